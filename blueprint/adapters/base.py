"""
Executor base — the contract between the engine and the process table.

The engine never calls ``subprocess`` directly. It is handed an
Executor (ShellExecutor in production, FakeExecutor in tests) and every
process goes through ``Executor.run``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel


class CommandResult(BaseModel):
    """Outcome of one process invocation."""

    argv: list[str]
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """Combined output, stdout first."""
        parts = [p for p in (self.stdout.strip(), self.stderr.strip()) if p]
        return "\n".join(parts)

    @property
    def error(self) -> str:
        return self.stderr.strip() or f"exit status {self.returncode}"


class Executor(ABC):
    """Runs processes. Implementations NEVER raise: failures come back
    as a non-zero ``returncode``.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Identifier for logs (e.g. 'shell', 'fake')."""

    @abstractmethod
    def run(
        self,
        argv: list[str],
        *,
        input: str | None = None,
        cwd: str | None = None,
    ) -> CommandResult:
        """Run ``argv`` to completion and capture its output.

        Args:
            argv: Program and arguments.
            input: Text piped to stdin (used for the sudo password).
            cwd: Working directory.
        """

    def run_shell(self, command: str, *, input: str | None = None) -> CommandResult:
        """Run a command string through ``sh -c``."""
        return self.run(["sh", "-c", command], input=input)
