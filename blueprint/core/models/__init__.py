"""
Domain models — Pydantic types for the provisioning engine.

All models are re-exported here for convenient access:

    from blueprint.core.models import Rule, Status, ExecutionRecord
"""

from blueprint.core.models.record import ExecutionRecord, command_succeeded
from blueprint.core.models.rule import CONCRETE_KINDS, Package, Rule
from blueprint.core.models.status import (
    AsdfStatus,
    CloneStatus,
    DecryptStatus,
    GPGKeyStatus,
    HomebrewStatus,
    KnownHostsStatus,
    MkdirStatus,
    OllamaStatus,
    PackageStatus,
    Status,
    StatusRecord,
    normalize_blueprint,
    normalize_path,
)

__all__ = [
    # record.py
    "ExecutionRecord",
    "command_succeeded",
    # rule.py
    "CONCRETE_KINDS",
    "Package",
    "Rule",
    # status.py
    "AsdfStatus",
    "CloneStatus",
    "DecryptStatus",
    "GPGKeyStatus",
    "HomebrewStatus",
    "KnownHostsStatus",
    "MkdirStatus",
    "OllamaStatus",
    "PackageStatus",
    "Status",
    "StatusRecord",
    "normalize_blueprint",
    "normalize_path",
]
