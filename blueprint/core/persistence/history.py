"""
Run history — append-only log of every apply.

Each run appends one NDJSON line to ~/.blueprint/history.ndjson holding
the run summary and every ExecutionRecord it produced. Entries are never
modified or deleted.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, Field

from blueprint.core.context import get_blueprint_home
from blueprint.core.models.record import ExecutionRecord

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_FILE = "history.ndjson"


class RunEntry(BaseModel):
    """A single run in the history ledger."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    run_id: str = ""
    blueprint: str = ""
    os: str = ""

    status: str = ""               # ok, partial, failed
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0

    records: list[ExecutionRecord] = Field(default_factory=list)


class HistoryWriter:
    """Reads and appends run entries; one line per apply, oldest first."""

    def __init__(self, path: Path | None = None):
        self._path = path or get_blueprint_home() / DEFAULT_HISTORY_FILE

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: RunEntry) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)

        line = json.dumps(entry.model_dump(mode="json"), ensure_ascii=False) + "\n"

        try:
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
            logger.debug("History entry written: %s", entry.run_id)
        except OSError as e:
            logger.error("Failed to write history entry: %s", e)

    def read_all(self) -> list[RunEntry]:
        """Read all entries from the ledger, oldest first."""
        if not self._path.is_file():
            return []

        entries = []
        try:
            with self._path.open("r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entries.append(RunEntry.model_validate(json.loads(line)))
                    except Exception as e:
                        logger.warning("Skipping corrupt history entry at line %d: %s", line_num, e)
        except OSError as e:
            logger.error("Failed to read history ledger: %s", e)

        return entries

    def read_recent(self, n: int = 20) -> list[RunEntry]:
        """Read the most recent N entries, oldest first."""
        return self.read_all()[-n:]

    def find(self, run: str) -> RunEntry | None:
        """Look a run up by id, or by position: ``"1"`` is the latest run."""
        entries = self.read_all()
        if run.isdigit():
            position = int(run)
            if 1 <= position <= len(entries):
                return entries[-position]
            return None
        return next((e for e in reversed(entries) if e.run_id == run), None)

    def entry_count(self) -> int:
        """Count entries without parsing them."""
        if not self._path.is_file():
            return 0
        try:
            with self._path.open("r", encoding="utf-8") as f:
                return sum(1 for line in f if line.strip())
        except OSError:
            return 0
