"""Adapters — process execution and tool bindings.

Public re-exports for convenient access.
"""

from blueprint.adapters.base import CommandResult, Executor
from blueprint.adapters.mock import FakeExecutor
from blueprint.adapters.shell.command import ShellExecutor

__all__ = [
    "CommandResult",
    "Executor",
    "FakeExecutor",
    "ShellExecutor",
]
