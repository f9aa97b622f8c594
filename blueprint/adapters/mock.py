"""
Fake executor — test double for every process blueprint would start.

Nothing is executed. Every invocation is logged, and responses can be
configured per command pattern (substring of the joined argv).
"""

from __future__ import annotations

from blueprint.adapters.base import CommandResult, Executor


class FakeExecutor(Executor):
    """Records calls and returns canned results.

    By default every command succeeds with ``default_output``.
    """

    def __init__(self, default_output: str = ""):
        self._default_output = default_output
        self._responses: list[tuple[str, CommandResult]] = []
        self._call_log: list[tuple[list[str], str | None]] = []

    @property
    def name(self) -> str:
        return "fake"

    @property
    def call_log(self) -> list[tuple[list[str], str | None]]:
        """All (argv, stdin) pairs received, in order."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    @property
    def commands(self) -> list[str]:
        """Each call as a single string (argv joined with spaces)."""
        return [" ".join(argv) for argv, _ in self._call_log]

    def ran(self, pattern: str) -> bool:
        """Whether any call contained ``pattern``."""
        return any(pattern in c for c in self.commands)

    def set_output(self, pattern: str, output: str) -> None:
        """Succeed with ``output`` for calls containing ``pattern``."""
        self._responses.append((pattern, CommandResult(argv=[], stdout=output)))

    def set_failure(self, pattern: str, error: str = "Fake failure", returncode: int = 1) -> None:
        """Fail calls containing ``pattern``."""
        self._responses.append(
            (pattern, CommandResult(argv=[], returncode=returncode, stderr=error))
        )

    def run(
        self,
        argv: list[str],
        *,
        input: str | None = None,
        cwd: str | None = None,
    ) -> CommandResult:
        self._call_log.append((list(argv), input))
        joined = " ".join(argv)

        # Later registrations win
        for pattern, canned in reversed(self._responses):
            if pattern in joined:
                return canned.model_copy(update={"argv": list(argv)})

        return CommandResult(argv=list(argv), stdout=self._default_output)
