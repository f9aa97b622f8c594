"""
Engine executor — the reconciliation loop.

Takes the rules parsed from one blueprint file, orders them, adds
uninstall rules for anything that drifted out of the file, runs each
rule's handler, and folds the outcome into Status.

Flow:
    rules → filter by OS → drift → resolve → execute → update status
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Collection, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from blueprint.core.engine.drift import find_drift
from blueprint.core.engine.resolver import dependency_edges, resolve
from blueprint.core.errors import HandlerError
from blueprint.core.models.record import ExecutionRecord
from blueprint.core.models.rule import Rule
from blueprint.core.models.status import Status, normalize_blueprint
from blueprint.core.persistence.history import HistoryWriter, RunEntry
from blueprint.handlers.base import Handler, HandlerContext
from blueprint.handlers.registry import new_handler

logger = logging.getLogger(__name__)

ProgressFn = Callable[[int, int, Handler], None]


@dataclass
class ExecutionPlan:
    """Ordered rules for one (blueprint, os) run."""

    run_id: str = ""
    blueprint: str = ""
    os_name: str = ""
    rules: list[Rule] = field(default_factory=list)
    excluded: set[int] = field(default_factory=set)   # positions skipped on request

    @property
    def total_rules(self) -> int:
        return len(self.rules)

    @property
    def uninstalls(self) -> list[Rule]:
        return [r for r in self.rules if r.is_uninstall]


@dataclass
class ExecutionReport:
    """Result of executing a plan."""

    run_id: str = ""
    blueprint: str = ""
    os_name: str = ""
    records: list[ExecutionRecord] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.records)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.records if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.records if r.failed)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.records if r.status == "skipped")

    @property
    def all_ok(self) -> bool:
        return self.failed == 0

    @property
    def status(self) -> str:
        if self.failed == 0:
            return "ok"
        if self.succeeded > 0:
            return "partial"
        return "failed"

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "blueprint": self.blueprint,
            "os": self.os_name,
            "status": self.status,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "records": [r.model_dump(mode="json") for r in self.records],
        }


def build_plan(
    rules: Sequence[Rule],
    status: Status,
    blueprint: str,
    os_name: str,
    skip_groups: Collection[str] = (),
    skip_ids: Collection[str] = (),
    run_id: str = "",
) -> ExecutionPlan:
    """Filter, diff and order ``rules`` into an execution plan.

    Rules excluded with ``skip_groups``/``skip_ids`` stay in the plan
    (so nothing they declare is treated as drift) but are not run.

    Raises:
        DependencyError: Unknown or ambiguous reference, duplicate id,
            or a cycle.
    """
    blueprint = normalize_blueprint(blueprint)
    applicable = [r for r in rules if r.applies_to(os_name)]
    drift = find_drift(status, applicable, blueprint, os_name)
    ordered = resolve([*applicable, *drift])

    excluded = {
        i
        for i, rule in enumerate(ordered)
        if (rule.group and rule.group in skip_groups) or (rule.id and rule.id in skip_ids)
    }

    logger.debug(
        "Plan for %s (%s): %d rules, %d uninstalls, %d excluded",
        blueprint,
        os_name,
        len(ordered),
        len(drift),
        len(excluded),
    )
    return ExecutionPlan(
        run_id=run_id or generate_run_id(),
        blueprint=blueprint,
        os_name=os_name,
        rules=ordered,
        excluded=excluded,
    )


def describe_plan(plan: ExecutionPlan, context: HandlerContext) -> list[dict[str, Any]]:
    """Dry-run view of every rule: what it is and the command it would run."""
    described = []
    for i, rule in enumerate(plan.rules):
        handler = new_handler(rule, context)
        entry: dict[str, Any] = {
            "kind": rule.concrete_kind(),
            "key": handler.dependency_key(),
            "uninstall": rule.is_uninstall,
            "excluded": i in plan.excluded,
            "details": handler.display_details(rule.is_uninstall),
            "info": handler.display_info(),
        }
        try:
            entry["command"] = handler.get_command()
        except HandlerError as e:
            entry["error"] = str(e)
        described.append(entry)
    return described


def execute_plan(
    plan: ExecutionPlan,
    status: Status,
    context: HandlerContext,
    progress: ProgressFn | None = None,
) -> ExecutionReport:
    """Run every rule in order and fold the results into ``status``.

    A rule whose dependency did not succeed is recorded as skipped.
    Handler failures are recorded and the run continues.
    """
    report = ExecutionReport(
        run_id=plan.run_id,
        blueprint=plan.blueprint,
        os_name=plan.os_name,
    )
    edges = dependency_edges(plan.rules)

    for i, rule in enumerate(plan.rules):
        handler = new_handler(rule, context)
        if progress is not None:
            progress(i + 1, plan.total_rules, handler)

        blocked_by = next(
            (plan.rules[j].dependency_key for j in sorted(edges[i]) if not report.records[j].ok),
            None,
        )
        record = _run_rule(handler, blocked_by, excluded=i in plan.excluded).model_copy(
            update={
                "blueprint": plan.blueprint,
                "os": plan.os_name,
                "rule": handler.dependency_key(),
            }
        )
        report.records.append(record)

        handler.update_status(status, report.records, plan.blueprint, plan.os_name)

        marker = "✓" if record.ok else "✗" if record.failed else "⊘"
        logger.info("%s %s → %s", marker, handler.display_details(rule.is_uninstall), record.status)

    return report


def _run_rule(handler: Handler, blocked_by: str | None, excluded: bool) -> ExecutionRecord:
    try:
        command = handler.get_command()
    except HandlerError as e:
        return ExecutionRecord.failure(command="", error=str(e))

    if excluded:
        return ExecutionRecord.skip(command, "excluded on the command line")
    if blocked_by is not None:
        return ExecutionRecord.skip(command, f"dependency '{blocked_by}' did not succeed")

    try:
        message = handler.run()
    except HandlerError as e:
        return ExecutionRecord.failure(command, error=str(e))
    except Exception as e:
        # Handlers should raise HandlerError; anything else still fails only this rule
        logger.exception("%s raised during %s", type(handler).__name__, handler.dependency_key())
        return ExecutionRecord.failure(command, error=f"{type(e).__name__}: {e}")
    return ExecutionRecord.success(command, output=message)


def write_history(report: ExecutionReport, writer: HistoryWriter) -> None:
    """Append the run to the history ledger."""
    writer.write(
        RunEntry(
            run_id=report.run_id,
            blueprint=report.blueprint,
            os=report.os_name,
            status=report.status,
            total=report.total,
            succeeded=report.succeeded,
            failed=report.failed,
            skipped=report.skipped,
            records=report.records,
        )
    )


def generate_run_id() -> str:
    """Generate a unique run ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"run-{now}-{short}"
