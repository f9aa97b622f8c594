"""
Handler base — the contract between the engine and each resource kind.

A handler turns one Rule into a forward action (``up``), a reverse
action (``down``), and a Status mutation (``update_status``). Handlers
raise HandlerError on failure; the engine records it against the rule.

To add a kind:
    1. Subclass Handler, set ``kind`` and ``status_type``
    2. Implement up, down, get_command, display_info, status_entries
    3. Register the class in ``blueprint.handlers.registry``
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import ClassVar

from blueprint.adapters.vcs.git import GitClient
from blueprint.core.engine.session import Session
from blueprint.core.errors import HandlerError
from blueprint.core.models.record import ExecutionRecord, command_succeeded
from blueprint.core.models.rule import Rule
from blueprint.core.models.status import Status, StatusRecord, normalize_blueprint

logger = logging.getLogger(__name__)


@dataclass
class HandlerContext:
    """Everything a handler needs besides its rule."""

    session: Session
    base_path: Path = field(default_factory=Path.cwd)
    git: GitClient | None = None

    @property
    def os_name(self) -> str:
        return self.session.os_name

    def git_client(self) -> GitClient:
        if self.git is None:
            self.git = GitClient(self.session.executor)
        return self.git


class Handler(ABC):
    """Abstract base class for all resource handlers."""

    kind: ClassVar[str] = ""
    status_type: ClassVar[type[StatusRecord]]

    def __init__(self, rule: Rule, context: HandlerContext, is_uninstall: bool = False):
        self.rule = rule
        self.context = context
        self.is_uninstall = is_uninstall

    # ── Required ────────────────────────────────────────────────

    @abstractmethod
    def up(self) -> str:
        """Apply the resource. Returns a message; raises HandlerError."""

    @abstractmethod
    def down(self) -> str:
        """Remove the resource. An absent resource is a no-op message, not an error."""

    @abstractmethod
    def get_command(self) -> str:
        """The exact command text ``up``/``down`` run or record.

        Raises:
            ValidationError: A parameter is unsafe to interpolate.
        """

    @abstractmethod
    def display_info(self) -> list[str]:
        """Human-readable parameter lines for plan output."""

    @abstractmethod
    def status_entries(self, blueprint: str, os_name: str) -> list[StatusRecord]:
        """The records this rule stands for (added on up, removed on down)."""

    # ── Optional capabilities ───────────────────────────────────

    def needs_sudo(self) -> bool | None:
        """Elevation override. None means the session heuristic decides."""
        return None

    def dependency_key(self) -> str:
        return self.rule.dependency_key

    def display_details(self, is_uninstall: bool = False) -> str:
        verb = "Removing" if is_uninstall else "Applying"
        return f"{verb} {self.kind} {self.dependency_key()}"

    @classmethod
    def declared_keys(cls, rule: Rule, os_name: str) -> set[str]:
        """Natural keys a declared rule of this kind covers."""
        return set()

    @classmethod
    def uninstall_rule(cls, record: StatusRecord) -> Rule | None:
        """An uninstall rule that reverts ``record``, an instance of ``status_type``."""
        return None

    @classmethod
    def find_uninstall_rules(
        cls,
        status: Status,
        rules: Sequence[Rule],
        blueprint: str,
        os_name: str,
    ) -> list[Rule]:
        """Uninstall rules for records of this kind no longer declared.

        Only records scoped to (blueprint, os_name) are considered.
        """
        declared: set[str] = set()
        for rule in rules:
            if rule.kind == cls.kind:
                declared |= cls.declared_keys(rule, os_name)

        result = []
        for record in status.scoped(cls.status_type.list_name, blueprint, os_name):
            if not isinstance(record, cls.status_type):
                raise TypeError(
                    f"{cls.kind} expects {cls.status_type.__name__} records, got {type(record).__name__}"
                )
            if record.key() in declared:
                continue
            rule = cls.uninstall_rule(record)
            if rule is not None:
                logger.debug("Drift: %s %s no longer declared", cls.kind, record.key())
                result.append(rule)
        return result

    # ── Engine entry points ─────────────────────────────────────

    def run(self) -> str:
        return self.down() if self.is_uninstall else self.up()

    def succeeded(self, records: Sequence[ExecutionRecord]) -> bool:
        """Whether this rule's exact command succeeded in this run."""
        try:
            command = self.get_command()
        except HandlerError:
            return False
        return command_succeeded(records, command)

    def update_status(
        self,
        status: Status,
        records: Sequence[ExecutionRecord],
        blueprint: str,
        os_name: str,
    ) -> None:
        """Fold this run's outcome into ``status``.

        Does nothing unless ``get_command()`` succeeded in ``records``.
        """
        if not self.succeeded(records):
            return

        blueprint = normalize_blueprint(blueprint)
        for entry in self.status_entries(blueprint, os_name):
            if self.is_uninstall:
                status.remove(entry.list_name, entry.key(), blueprint, os_name)
            else:
                status.upsert(entry)

    # ── Helpers ─────────────────────────────────────────────────

    def execute(self, command: str) -> str:
        """Run ``command`` through the session with this handler's elevation."""
        return self.context.session.execute(command, needs_sudo=self.needs_sudo())
