"""
GPG key handler — APT signing keys and their source list entries.

Writes ``/usr/share/keyrings/<keyring>.gpg`` and
``/etc/apt/sources.list.d/<keyring>.list``. Both live in root-owned
directories, so this handler always elevates.
"""

from __future__ import annotations

import shlex
from pathlib import Path

from blueprint.core.models.rule import Rule
from blueprint.core.models.status import GPGKeyStatus, StatusRecord
from blueprint.core.validation import validate_token
from blueprint.handlers.base import Handler

KEYRING_DIR = "/usr/share/keyrings"
SOURCES_DIR = "/etc/apt/sources.list.d"


class GPGKeyHandler(Handler):
    kind = "gpg-key"
    status_type = GPGKeyStatus

    @property
    def keyring_path(self) -> str:
        keyring = validate_token(self.rule.gpg_keyring, "keyring", strict=True)
        return f"{KEYRING_DIR}/{keyring}.gpg"

    @property
    def sources_path(self) -> str:
        keyring = validate_token(self.rule.gpg_keyring, "keyring", strict=True)
        return f"{SOURCES_DIR}/{keyring}.list"

    def up(self) -> str:
        self.execute(self.get_command())
        return f"Added keyring {self.rule.gpg_keyring} and APT source"

    def down(self) -> str:
        command = self.get_command()
        if not (Path(self.keyring_path).exists() or Path(self.sources_path).exists()):
            return f"Keyring {self.rule.gpg_keyring} not installed"
        self.execute(command)
        return f"Removed keyring {self.rule.gpg_keyring}"

    def get_command(self) -> str:
        keyring, sources = self.keyring_path, self.sources_path
        if self.is_uninstall:
            return f"rm -f {keyring} {sources}"
        deb_url = validate_token(self.rule.gpg_deb_url, "deb url")
        source_line = shlex.quote(f"deb [signed-by={keyring}] {deb_url} * *")
        return (
            f"curl -fsSL {shlex.quote(self.rule.gpg_key_url)} | gpg --dearmor --yes -o {keyring}"
            f" && echo {source_line} > {sources}"
        )

    def display_info(self) -> list[str]:
        return [
            f"Keyring: {self.rule.gpg_keyring}",
            f"Key URL: {self.rule.gpg_key_url}",
            f"Repository: {self.rule.gpg_deb_url}",
        ]

    def needs_sudo(self) -> bool | None:
        return True

    def status_entries(self, blueprint: str, os_name: str) -> list[StatusRecord]:
        return [
            GPGKeyStatus(
                keyring=self.rule.gpg_keyring,
                url=self.rule.gpg_key_url,
                deb_url=self.rule.gpg_deb_url,
                blueprint=blueprint,
                os=os_name,
            )
        ]

    @classmethod
    def declared_keys(cls, rule: Rule, os_name: str) -> set[str]:
        return {rule.gpg_keyring}

    @classmethod
    def uninstall_rule(cls, record: StatusRecord) -> Rule:
        return Rule(
            kind="uninstall",
            gpg_keyring=record.keyring,
            gpg_key_url=record.url,
            gpg_deb_url=record.deb_url,
            os_list=(record.os,),
        )
