"""
Status use case — what blueprint has applied so far.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from blueprint.core.config.loader import EngineConfig
from blueprint.core.models.status import Status, StatusRecord, normalize_blueprint
from blueprint.core.persistence.status_file import load_status


@dataclass
class StatusResult:
    """Status records grouped by kind, optionally narrowed to one blueprint."""

    status_path: Path | None = None
    blueprint: str | None = None
    groups: dict[str, list[StatusRecord]] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(len(records) for records in self.groups.values())

    def to_dict(self) -> dict:
        return {
            "status_file": str(self.status_path),
            "blueprint": self.blueprint,
            "total": self.total,
            "resources": {
                name: [r.model_dump(mode="json") for r in records]
                for name, records in self.groups.items()
            },
        }


def get_status(
    config: EngineConfig | None = None,
    blueprint: str | Path | None = None,
    os_name: str | None = None,
) -> StatusResult:
    """Load the status file and group its records by kind."""
    config = config or EngineConfig()
    status = load_status(config.status_path)
    target = normalize_blueprint(blueprint) if blueprint else None

    result = StatusResult(status_path=config.status_path, blueprint=target)
    for name in Status.model_fields:
        records = [
            r
            for r in status.records(name)
            if (target is None or normalize_blueprint(r.blueprint) == target)
            and (os_name is None or r.os == os_name)
        ]
        if records:
            result.groups[name] = records
    return result
