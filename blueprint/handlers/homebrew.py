"""
Homebrew handler — formulas installed with ``brew``.

Homebrew itself is bootstrapped on first use (at most once per run).
Installed versions are read back with ``brew list --versions`` and kept
in the status records.
"""

from __future__ import annotations

from blueprint.core.models.rule import Rule
from blueprint.core.models.status import HomebrewStatus, StatusRecord
from blueprint.core.validation import validate_tokens
from blueprint.handlers.base import Handler, HandlerContext

HOMEBREW_INSTALL = (
    "NONINTERACTIVE=1 /bin/bash -c "
    '"$(curl -fsSL https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh)"'
)


class HomebrewHandler(Handler):
    kind = "homebrew"
    status_type = HomebrewStatus

    def __init__(self, rule: Rule, context: HandlerContext, is_uninstall: bool = False):
        super().__init__(rule, context, is_uninstall)
        self._versions: dict[str, str] = {}

    def up(self) -> str:
        command = self.get_command()
        session = self.context.session
        session.ensure_prerequisite(
            "homebrew",
            lambda: session.run(["sh", "-c", "command -v brew"]).ok,
            lambda: session.execute(HOMEBREW_INSTALL, needs_sudo=False),
        )
        self.execute(command)

        for formula in self.rule.homebrew_packages:
            self._versions[formula] = self._installed_version(formula)
        return f"Installed {', '.join(self.rule.homebrew_packages)}"

    def down(self) -> str:
        command = self.get_command()
        formulas = self.rule.homebrew_packages
        if not any(self._installed_version(f) for f in formulas):
            return f"{', '.join(formulas)} not installed"
        self.execute(command)
        return f"Uninstalled {', '.join(formulas)}"

    def get_command(self) -> str:
        formulas = " ".join(validate_tokens(self.rule.homebrew_packages, "formula"))
        if self.is_uninstall:
            return f"brew uninstall {formulas}"
        return f"brew install {formulas}"

    def display_info(self) -> list[str]:
        return [f"Formulas: {', '.join(self.rule.homebrew_packages)}"]

    def needs_sudo(self) -> bool | None:
        return False

    def status_entries(self, blueprint: str, os_name: str) -> list[StatusRecord]:
        return [
            HomebrewStatus(
                formula=f,
                version=self._versions.get(f, ""),
                blueprint=blueprint,
                os=os_name,
            )
            for f in self.rule.homebrew_packages
        ]

    @classmethod
    def declared_keys(cls, rule: Rule, os_name: str) -> set[str]:
        return set(rule.homebrew_packages)

    @classmethod
    def uninstall_rule(cls, record: StatusRecord) -> Rule:
        return Rule(kind="uninstall", homebrew_packages=(record.formula,), os_list=(record.os,))

    def _installed_version(self, formula: str) -> str:
        """Installed version of ``formula``, or "" when it is not installed."""
        result = self.context.session.run(["brew", "list", "--versions", formula])
        if not result.ok:
            return ""
        fields = result.stdout.split()
        return fields[-1] if len(fields) > 1 else ""
