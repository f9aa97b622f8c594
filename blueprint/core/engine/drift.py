"""
Drift detection — resources in Status that the blueprint no longer declares.

Works on in-memory sets only; it cannot fail.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from blueprint.core.models.rule import Rule
from blueprint.core.models.status import Status
from blueprint.handlers.registry import handler_classes

logger = logging.getLogger(__name__)


def find_drift(status: Status, rules: Sequence[Rule], blueprint: str, os_name: str) -> list[Rule]:
    """Uninstall rules for every record of (blueprint, os_name) not in ``rules``."""
    drifted: list[Rule] = []
    for cls in handler_classes():
        drifted.extend(cls.find_uninstall_rules(status, rules, blueprint, os_name))
    if drifted:
        logger.info("%d resource(s) no longer declared in %s", len(drifted), blueprint)
    return drifted
