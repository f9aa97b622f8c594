"""
Install handler — system packages through the OS package manager.

Packages default to ``apt-get`` on Linux and ``brew`` on macOS. A
package can pin its manager (``snap:code``). Packages are grouped by
manager in declaration order and the per-manager commands are joined
with ``&&``.
"""

from __future__ import annotations

from blueprint.core.models.rule import Package, Rule
from blueprint.core.models.status import PackageStatus, StatusRecord
from blueprint.core.validation import validate_token
from blueprint.handlers.base import Handler

_BREW = ("brew", "homebrew")
_APT = ("apt", "apt-get")


class InstallHandler(Handler):
    kind = "install"
    status_type = PackageStatus

    def up(self) -> str:
        self.execute(self.get_command())
        return f"Installed {', '.join(self.rule.package_names())}"

    def down(self) -> str:
        self.execute(self.get_command())
        return f"Removed {', '.join(self.rule.package_names())}"

    def get_command(self) -> str:
        build = _remove_command if self.is_uninstall else _install_command
        return " && ".join(build(mgr, names) for mgr, names in self._groups().items())

    def display_info(self) -> list[str]:
        return [f"Packages: {', '.join(str(p) for p in self.rule.packages)}"]

    def needs_sudo(self) -> bool | None:
        if self.context.os_name != "linux":
            return False
        return not all(mgr in _BREW for mgr in self._groups())

    def status_entries(self, blueprint: str, os_name: str) -> list[StatusRecord]:
        return [
            PackageStatus(
                name=p.name,
                package_manager=p.package_manager,
                blueprint=blueprint,
                os=os_name,
            )
            for p in self.rule.packages
        ]

    @classmethod
    def declared_keys(cls, rule: Rule, os_name: str) -> set[str]:
        return {p.key(os_name) for p in rule.packages}

    @classmethod
    def uninstall_rule(cls, record: StatusRecord) -> Rule:
        return Rule(
            kind="uninstall",
            packages=(Package(name=record.name, package_manager=record.package_manager),),
            os_list=(record.os,),
        )

    def _groups(self) -> dict[str, list[str]]:
        groups: dict[str, list[str]] = {}
        for pkg in self.rule.packages:
            manager = validate_token(pkg.manager_for(self.context.os_name), "package manager")
            groups.setdefault(manager, []).append(validate_token(pkg.name, "package name"))
        return groups


def _install_command(manager: str, names: list[str]) -> str:
    if manager == "snap":
        return " && ".join(f"snap install {n}" for n in names)
    if manager in _BREW:
        return f"brew install {' '.join(names)}"
    if manager in _APT:
        return f"apt-get install -y {' '.join(names)}"
    return f"{manager} install {' '.join(names)}"


def _remove_command(manager: str, names: list[str]) -> str:
    if manager == "snap":
        return " && ".join(f"snap remove {n}" for n in names)
    if manager in _BREW:
        return f"brew uninstall {' '.join(names)}"
    if manager in _APT:
        return f"apt-get remove -y {' '.join(names)}"
    return f"{manager} remove {' '.join(names)}"
