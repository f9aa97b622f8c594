"""
Apply use case — reconcile the machine with one blueprint.

The full vertical slice: open the blueprint (a local file or a git
reference, see ``blueprint.core.services.source``), parse it, load
status, plan (filter, drift, resolve), execute through the handlers,
persist status once and append the run to the history ledger.

``plan_blueprint`` stops after planning; nothing is executed and
status is not written.
"""

from __future__ import annotations

import logging
from collections.abc import Collection
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from blueprint.adapters.vcs.git import GitClient
from blueprint.core.config.loader import EngineConfig
from blueprint.core.config.parser import parse_file
from blueprint.core.engine.executor import (
    ExecutionPlan,
    ExecutionReport,
    ProgressFn,
    build_plan,
    describe_plan,
    execute_plan,
    write_history,
)
from blueprint.core.engine.session import Session
from blueprint.core.errors import DependencyError, GitError, ParseError
from blueprint.core.models.status import Status
from blueprint.core.persistence.history import HistoryWriter
from blueprint.core.persistence.status_file import load_status, save_status
from blueprint.core.services.source import BlueprintSource, open_blueprint
from blueprint.handlers.base import HandlerContext
from blueprint.handlers.decrypt import DEFAULT_PASSWORD_ID, secret_key

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_INVALID = 1
EXIT_RULES_FAILED = 2


@dataclass
class RunResult:
    """Result of planning or applying a blueprint."""

    blueprint: str | None = None
    os_name: str = ""
    plan: ExecutionPlan | None = None
    report: ExecutionReport | None = None
    steps: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None

    @property
    def exit_code(self) -> int:
        if self.error:
            return EXIT_INVALID
        if self.report is not None and not self.report.all_ok:
            return EXIT_RULES_FAILED
        return EXIT_OK

    def to_dict(self) -> dict:
        result: dict = {}
        if self.error:
            result["error"] = self.error
            return result

        result["blueprint"] = self.blueprint
        result["os"] = self.os_name
        if self.plan:
            result["run_id"] = self.plan.run_id
            result["rules_planned"] = self.plan.total_rules
        if self.steps:
            result["steps"] = self.steps
        if self.report:
            result["report"] = self.report.to_dict()
        return result


def plan_blueprint(
    reference: str | Path,
    session: Session,
    config: EngineConfig | None = None,
    skip_groups: Collection[str] = (),
    skip_ids: Collection[str] = (),
) -> RunResult:
    """Parse and plan without executing anything."""
    config = config or EngineConfig()
    try:
        with open_blueprint(reference, session.executor, config.https_fallback) as source:
            result, _status = _prepare(source, session, config, skip_groups, skip_ids)
            if result.plan is not None:
                result.steps = describe_plan(result.plan, _context(source, session, config))
            return result
    except (GitError, ParseError) as e:
        return _unreadable(reference, session, e)


def apply_blueprint(
    reference: str | Path,
    session: Session,
    config: EngineConfig | None = None,
    skip_groups: Collection[str] = (),
    skip_ids: Collection[str] = (),
    progress: ProgressFn | None = None,
) -> RunResult:
    """Reconcile the machine with ``reference`` and persist the outcome.

    ``reference`` is a blueprint file or a remote ``url[@branch][:path]``.
    """
    config = config or EngineConfig()
    try:
        with open_blueprint(reference, session.executor, config.https_fallback) as source:
            return _apply(source, session, config, skip_groups, skip_ids, progress)
    except (GitError, ParseError) as e:
        return _unreadable(reference, session, e)


def collect_passwords(plan: ExecutionPlan, session: Session) -> None:
    """Prompt once per distinct password id before anything runs."""
    seen: set[str] = set()
    for i, rule in enumerate(plan.rules):
        if rule.concrete_kind() != "decrypt" or rule.is_uninstall or i in plan.excluded:
            continue
        password_id = rule.password_id or DEFAULT_PASSWORD_ID
        if password_id in seen:
            continue
        seen.add(password_id)
        session.get_secret(secret_key(password_id), f"Password for '{password_id}'")


def _apply(
    source: BlueprintSource,
    session: Session,
    config: EngineConfig,
    skip_groups: Collection[str],
    skip_ids: Collection[str],
    progress: ProgressFn | None,
) -> RunResult:
    result, status = _prepare(source, session, config, skip_groups, skip_ids)
    if result.plan is None:
        return result

    plan = result.plan
    if session.can_prompt:
        collect_passwords(plan, session)

    try:
        report = execute_plan(plan, status, _context(source, session, config), progress=progress)
    finally:
        # Rules that already succeeded stay recorded even if the run is cut short
        save_status(status, config.status_path)
        session.clear()

    result.report = report
    write_history(report, HistoryWriter(config.history_path))

    logger.info(
        "Run %s: %d ok, %d failed, %d skipped",
        report.run_id,
        report.succeeded,
        report.failed,
        report.skipped,
    )
    return result


def _prepare(
    source: BlueprintSource,
    session: Session,
    config: EngineConfig,
    skip_groups: Collection[str],
    skip_ids: Collection[str],
) -> tuple[RunResult, Status]:
    os_name = session.os_name
    result = RunResult(blueprint=source.identity, os_name=os_name)

    try:
        rules = parse_file(source.path, anchor_dir=source.anchor_dir)
    except ParseError as e:
        result.error = str(e)
        return result, Status()

    status = load_status(config.status_path)
    try:
        result.plan = build_plan(
            rules,
            status,
            blueprint=source.identity,
            os_name=os_name,
            skip_groups=skip_groups,
            skip_ids=skip_ids,
        )
    except (DependencyError, ParseError) as e:
        result.error = str(e)
    return result, status


def _unreadable(reference: str | Path, session: Session, error: Exception) -> RunResult:
    return RunResult(
        blueprint=str(reference),
        os_name=session.os_name,
        error=f"Cannot load blueprint {reference}: {error}",
    )


def _context(source: BlueprintSource, session: Session, config: EngineConfig) -> HandlerContext:
    return HandlerContext(
        session=session,
        base_path=source.path.parent,
        git=GitClient(session.executor, https_fallback=config.https_fallback),
    )
