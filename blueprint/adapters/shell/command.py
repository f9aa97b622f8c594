"""
Shell executor — runs real processes with ``subprocess``.

This is the only place in blueprint that calls ``subprocess.run``.
Commands run to completion: provisioning steps (package installs,
clones) have no sensible timeout.
"""

from __future__ import annotations

import logging
import subprocess
import time

from blueprint.adapters.base import CommandResult, Executor

logger = logging.getLogger(__name__)


class ShellExecutor(Executor):
    """Execute processes and capture their output."""

    @property
    def name(self) -> str:
        return "shell"

    def run(
        self,
        argv: list[str],
        *,
        input: str | None = None,
        cwd: str | None = None,
    ) -> CommandResult:
        # input may hold the sudo password: never log it
        logger.debug("Executing: %s (cwd=%s)", argv, cwd)
        start = time.monotonic()

        try:
            result = subprocess.run(
                argv,
                cwd=cwd,
                input=input,
                capture_output=True,
                text=True,
            )
        except OSError as e:
            return CommandResult(
                argv=argv,
                returncode=127,
                stderr=f"Command execution error: {e}",
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        if result.returncode != 0:
            logger.debug("Exit %d: %s", result.returncode, result.stderr.strip()[-500:])

        return CommandResult(
            argv=argv,
            returncode=result.returncode,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
            duration_ms=elapsed_ms,
        )
