"""
Clone handler — git repositories kept at a declared path.

``up`` clones or fast-forwards through GitClient; ``down`` deletes the
checkout. The resolved HEAD SHA is stored in the status record.
"""

from __future__ import annotations

import logging
import shlex
import shutil
from pathlib import Path

from blueprint.core.errors import GitError, HandlerError
from blueprint.core.models.rule import Rule
from blueprint.core.models.status import CloneStatus, StatusRecord, normalize_path
from blueprint.core.validation import validate_token
from blueprint.handlers.base import Handler, HandlerContext

logger = logging.getLogger(__name__)


class CloneHandler(Handler):
    kind = "clone"
    status_type = CloneStatus

    def __init__(self, rule: Rule, context: HandlerContext, is_uninstall: bool = False):
        super().__init__(rule, context, is_uninstall)
        self._sha = ""

    def up(self) -> str:
        self.get_command()
        git = self.context.git_client()
        try:
            result = git.clone_or_update(self.rule.clone_url, self._dest(), self.rule.branch)
        except GitError as e:
            raise HandlerError(f"Clone of {self.rule.clone_url} failed: {e}") from e
        self._sha = result.new_sha
        return result.message

    def down(self) -> str:
        dest = self._dest()
        if not dest.exists():
            return f"Repository not found at {dest}"
        try:
            shutil.rmtree(dest)
        except OSError as e:
            raise HandlerError(f"Cannot remove {dest}: {e}") from e
        return f"Removed {dest}"

    def get_command(self) -> str:
        dest = shlex.quote(str(self._dest()))
        if self.is_uninstall:
            return f"rm -rf {dest}"
        parts = ["git clone"]
        if self.rule.branch:
            parts.append(f"--branch {validate_token(self.rule.branch, 'branch')}")
        parts += [shlex.quote(self.rule.clone_url), dest]
        return " ".join(parts)

    def display_info(self) -> list[str]:
        lines = [f"URL: {self.rule.clone_url}", f"Path: {self.rule.clone_path}"]
        if self.rule.branch:
            lines.append(f"Branch: {self.rule.branch}")
        return lines

    def needs_sudo(self) -> bool | None:
        return False

    def status_entries(self, blueprint: str, os_name: str) -> list[StatusRecord]:
        return [
            CloneStatus(
                url=self.rule.clone_url,
                path=self.rule.clone_path,
                branch=self.rule.branch,
                sha=self._sha,
                blueprint=blueprint,
                os=os_name,
            )
        ]

    @classmethod
    def declared_keys(cls, rule: Rule, os_name: str) -> set[str]:
        return {normalize_path(rule.clone_path)}

    @classmethod
    def uninstall_rule(cls, record: StatusRecord) -> Rule:
        return Rule(
            kind="uninstall",
            clone_url=record.url,
            clone_path=record.path,
            branch=record.branch,
            os_list=(record.os,),
        )

    def _dest(self) -> Path:
        return Path(self.rule.clone_path).expanduser()
