"""
Known-hosts handler — SSH host keys in ~/.ssh/known_hosts.

``up`` runs ``ssh-keyscan`` and appends the result unless the host is
already listed. ``down`` deletes the host's lines with ``sed``.
"""

from __future__ import annotations

import logging
import os
import shlex
from pathlib import Path

from blueprint.core.errors import HandlerError
from blueprint.core.models.rule import Rule
from blueprint.core.models.status import KnownHostsStatus, StatusRecord
from blueprint.core.validation import validate_token
from blueprint.handlers.base import Handler

logger = logging.getLogger(__name__)

DEFAULT_KEY_TYPE = "ed25519"


def known_hosts_file() -> Path:
    return Path.home() / ".ssh" / "known_hosts"


class KnownHostsHandler(Handler):
    kind = "known_hosts"
    status_type = KnownHostsStatus

    @property
    def key_type(self) -> str:
        return self.rule.known_hosts_key or DEFAULT_KEY_TYPE

    def up(self) -> str:
        command = self.get_command()
        host = self.rule.known_hosts
        if self._is_known():
            return f"{host} already in known_hosts"

        output = self.execute(command)
        entries = [
            line for line in output.splitlines() if line.strip() and not line.startswith("#")
        ]
        if not entries:
            raise HandlerError(f"ssh-keyscan returned no {self.key_type} key for {host}")

        path = known_hosts_file()
        try:
            path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as f:
                f.write("\n".join(entries) + "\n")
            os.chmod(path, 0o600)
        except OSError as e:
            raise HandlerError(f"Cannot update {path}: {e}") from e

        return f"Added {host} ({self.key_type}) to known_hosts"

    def down(self) -> str:
        command = self.get_command()
        host = self.rule.known_hosts
        if not self._is_known():
            return f"{host} not in known_hosts"

        self.execute(command)

        backup = known_hosts_file().with_name("known_hosts.bak")
        try:
            backup.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove %s: %s", backup, e)

        return f"Removed {host} from known_hosts"

    def get_command(self) -> str:
        host = validate_token(self.rule.known_hosts, "host", strict=True)
        if self.is_uninstall:
            pattern = host.replace(".", r"\.")
            path = shlex.quote(str(known_hosts_file()))
            return f"sed -i.bak '/^{pattern}[, ]/d' {path}"
        key_type = validate_token(self.key_type, "key type", strict=True)
        return f"ssh-keyscan -t {key_type} {host}"

    def display_info(self) -> list[str]:
        return [f"Host: {self.rule.known_hosts}", f"Key type: {self.key_type}"]

    def needs_sudo(self) -> bool | None:
        return False

    def status_entries(self, blueprint: str, os_name: str) -> list[StatusRecord]:
        return [
            KnownHostsStatus(
                host=self.rule.known_hosts,
                key_type=self.key_type,
                blueprint=blueprint,
                os=os_name,
            )
        ]

    @classmethod
    def declared_keys(cls, rule: Rule, os_name: str) -> set[str]:
        return {rule.known_hosts}

    @classmethod
    def uninstall_rule(cls, record: StatusRecord) -> Rule:
        return Rule(
            kind="uninstall",
            known_hosts=record.host,
            known_hosts_key=record.key_type,
            os_list=(record.os,),
        )

    def _is_known(self) -> bool:
        path = known_hosts_file()
        if not path.is_file():
            return False
        host = self.rule.known_hosts
        prefixes = (f"{host} ", f"{host},")
        try:
            with path.open("r", encoding="utf-8") as f:
                return any(line.startswith(prefixes) for line in f)
        except (OSError, UnicodeDecodeError) as e:
            raise HandlerError(f"Cannot read {path}: {e}") from e
