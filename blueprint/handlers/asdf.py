"""
asdf handler — language runtimes through the asdf version manager.

Entries are ``plugin@version``. Several versions of one plugin coexist,
so each version is its own status record. asdf itself is installed on
first use, at most once per run.

After an uninstall, a plugin left with no installed versions is removed
as well (best effort).
"""

from __future__ import annotations

import logging

from blueprint.core.errors import ValidationError
from blueprint.core.models.rule import Rule
from blueprint.core.models.status import AsdfStatus, StatusRecord
from blueprint.core.validation import validate_token
from blueprint.handlers.base import Handler

logger = logging.getLogger(__name__)

ASDF_ENV = 'export PATH="$HOME/.asdf/bin:$HOME/.asdf/shims:$PATH"'
ASDF_GIT_URL = "https://github.com/asdf-vm/asdf.git"
ASDF_VERSION = "v0.14.1"


def split_entry(entry: str) -> tuple[str, str]:
    """``nodejs@20.11.0`` → ``("nodejs", "20.11.0")``, validated."""
    plugin, sep, version = entry.partition("@")
    if not sep or not plugin or not version:
        raise ValidationError(f"Invalid asdf entry {entry!r}: expected plugin@version")
    return validate_token(plugin, "asdf plugin"), validate_token(version, "asdf version")


class AsdfHandler(Handler):
    kind = "asdf"
    status_type = AsdfStatus

    def up(self) -> str:
        command = self.get_command()
        self._ensure_asdf()
        self.execute(command)
        return f"Installed {', '.join(f'{p} {v}' for p, v in self._entries())}"

    def down(self) -> str:
        command = self.get_command()
        entries = self._entries()
        if not any(self._is_installed(p, v) for p, v in entries):
            return f"{', '.join(f'{p} {v}' for p, v in entries)} not installed"

        self.execute(command)
        for plugin in dict.fromkeys(p for p, _ in entries):
            self._remove_plugin_if_unused(plugin)
        return f"Uninstalled {', '.join(f'{p} {v}' for p, v in entries)}"

    def get_command(self) -> str:
        if self.is_uninstall:
            steps = [f"asdf uninstall {p} {v}" for p, v in self._entries()]
        else:
            steps = [
                f"asdf plugin add {p} 2>/dev/null || true && asdf install {p} {v}"
                for p, v in self._entries()
            ]
        return " && ".join([ASDF_ENV, *steps])

    def display_info(self) -> list[str]:
        return [f"Tools: {', '.join(f'{p} {v}' for p, v in self._entries())}"]

    def needs_sudo(self) -> bool | None:
        return False

    def status_entries(self, blueprint: str, os_name: str) -> list[StatusRecord]:
        return [
            AsdfStatus(plugin=p, version=v, blueprint=blueprint, os=os_name)
            for p, v in self._entries()
        ]

    @classmethod
    def declared_keys(cls, rule: Rule, os_name: str) -> set[str]:
        return set(rule.asdf_packages)

    @classmethod
    def uninstall_rule(cls, record: StatusRecord) -> Rule:
        return Rule(
            kind="uninstall",
            asdf_packages=(record.key(),),
            os_list=(record.os,),
        )

    # ── Helpers ─────────────────────────────────────────────────

    def _entries(self) -> list[tuple[str, str]]:
        return [split_entry(e) for e in self.rule.asdf_packages]

    def _asdf(self, args: str) -> str:
        return f"{ASDF_ENV} && asdf {args}"

    def _ensure_asdf(self) -> None:
        session = self.context.session

        def installed() -> bool:
            return session.run(["sh", "-c", f"{ASDF_ENV} && command -v asdf"]).ok

        def install() -> None:
            if self.context.os_name == "mac":
                session.execute("brew install asdf", needs_sudo=False)
            else:
                session.execute(
                    f"git clone {ASDF_GIT_URL} ~/.asdf --branch {ASDF_VERSION}",
                    needs_sudo=False,
                )

        session.ensure_prerequisite("asdf", installed, install)

    def _is_installed(self, plugin: str, version: str) -> bool:
        result = self.context.session.run(["sh", "-c", self._asdf(f"list {plugin}")])
        if not result.ok:
            return False
        installed = (line.strip().lstrip("*").strip() for line in result.stdout.splitlines())
        return version in installed

    def _remove_plugin_if_unused(self, plugin: str) -> None:
        session = self.context.session
        listing = session.run(["sh", "-c", self._asdf(f"list {plugin}")])
        if listing.ok and listing.stdout.strip():
            return
        result = session.run(["sh", "-c", self._asdf(f"plugin remove {plugin}")])
        if not result.ok:
            logger.warning("Could not remove asdf plugin %s: %s", plugin, result.error)
        else:
            logger.info("Removed asdf plugin %s (no versions left)", plugin)
