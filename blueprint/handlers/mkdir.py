"""
Mkdir handler — directories with optional octal permissions.
"""

from __future__ import annotations

import shlex
from pathlib import Path

from blueprint.core.models.rule import Rule
from blueprint.core.models.status import MkdirStatus, StatusRecord, normalize_path
from blueprint.core.validation import validate_perms
from blueprint.handlers.base import Handler


class MkdirHandler(Handler):
    kind = "mkdir"
    status_type = MkdirStatus

    def up(self) -> str:
        path = self._path()
        existed = path.is_dir()
        self.execute(self.get_command())
        if existed:
            return f"Directory {path} already exists"
        return f"Created {path}"

    def down(self) -> str:
        path = self._path()
        if not path.exists():
            return f"Directory {path} does not exist"
        self.execute(self.get_command())
        return f"Removed {path}"

    def get_command(self) -> str:
        path = shlex.quote(str(self._path()))
        if self.is_uninstall:
            return f"rm -rf {path}"
        command = f"mkdir -p {path}"
        if self.rule.mkdir_perms:
            command += f" && chmod {validate_perms(self.rule.mkdir_perms)} {path}"
        return command

    def display_info(self) -> list[str]:
        lines = [f"Path: {self.rule.mkdir}"]
        if self.rule.mkdir_perms:
            lines.append(f"Permissions: {self.rule.mkdir_perms}")
        return lines

    def status_entries(self, blueprint: str, os_name: str) -> list[StatusRecord]:
        return [
            MkdirStatus(
                path=self.rule.mkdir,
                perms=self.rule.mkdir_perms,
                blueprint=blueprint,
                os=os_name,
            )
        ]

    @classmethod
    def declared_keys(cls, rule: Rule, os_name: str) -> set[str]:
        return {normalize_path(rule.mkdir)}

    @classmethod
    def uninstall_rule(cls, record: StatusRecord) -> Rule:
        return Rule(kind="uninstall", mkdir=record.path, os_list=(record.os,))

    def _path(self) -> Path:
        return Path(self.rule.mkdir).expanduser()
