"""
ExecutionRecord — the outcome of one rule in the current run.

Records are the contract between the engine and handlers' status
updates: a handler only touches Status when the exact text of its
``get_command()`` appears here with status ``success``.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class ExecutionRecord(BaseModel):
    """Result of running (or skipping) one rule."""

    timestamp: str = Field(default_factory=_now_iso)
    blueprint: str = ""
    os: str = ""
    rule: str = ""                  # dependency key, for display
    command: str
    status: Literal["success", "error", "skipped"] = "success"
    output: str = ""
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.status == "success"

    @property
    def failed(self) -> bool:
        return self.status == "error"

    @classmethod
    def success(cls, command: str, output: str = "", **kwargs: Any) -> ExecutionRecord:
        return cls(command=command, status="success", output=output, **kwargs)

    @classmethod
    def failure(cls, command: str, error: str, **kwargs: Any) -> ExecutionRecord:
        return cls(command=command, status="error", error=error, **kwargs)

    @classmethod
    def skip(cls, command: str, reason: str = "", **kwargs: Any) -> ExecutionRecord:
        return cls(command=command, status="skipped", error=reason, **kwargs)


def command_succeeded(records: Iterable[ExecutionRecord], command: str) -> bool:
    """Whether the most recent record for ``command`` is a success."""
    result = False
    for record in records:
        if record.command == command:
            result = record.ok
    return result
