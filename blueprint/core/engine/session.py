"""
Session — per-run execution state shared by every handler.

Owns three caches that live exactly as long as one run:

- Secrets: the sudo password and decrypt passwords, prompted for at
  most once each and held in memory only.
- Commands: output of every command that already succeeded, so a
  byte-identical command is not issued twice.
- Prerequisites: one lock per "ensure tool installed" sequence, so an
  install script runs at most once even when several rules need it.

Elevation: the sudo password is piped on stdin (``sudo -S``) with
``-k`` so no credential is cached by sudo itself. When passwordless
sudo works, ``sudo -n`` is used and nothing is prompted. Root runs
commands as they are.
"""

from __future__ import annotations

import logging
import shlex
import threading
from collections.abc import Callable, Iterable

from blueprint.adapters.base import CommandResult, Executor
from blueprint.core.context import current_os, is_root
from blueprint.core.errors import CommandError
from blueprint.core.observability.logging_config import forget_secrets, register_secret

logger = logging.getLogger(__name__)

SUDO_KEY = "sudo"

# First tokens that need root on Linux
SUDO_COMMANDS = frozenset(
    {
        "apt",
        "apt-get",
        "dpkg",
        "snap",
        "dnf",
        "yum",
        "pacman",
        "zypper",
        "apk",
        "systemctl",
    }
)

_WRONG_PASSWORD_MARKERS = ("incorrect password", "sorry, try again", "no password was provided")

PromptFn = Callable[[str, str], str]


class Session:
    """Execution context for one reconciliation run.

    Args:
        executor: Runs the processes.
        prompt: ``prompt(key, label) -> secret``; None disables prompting.
        os_name: Target OS (default: detected).
        root: Whether we already run as root (default: detected).
        extra_sudo_commands: Additional first tokens that need elevation.
    """

    def __init__(
        self,
        executor: Executor,
        prompt: PromptFn | None = None,
        os_name: str | None = None,
        root: bool | None = None,
        extra_sudo_commands: Iterable[str] = (),
    ):
        self.executor = executor
        self.os_name = os_name or current_os()
        self._prompt = prompt
        self._root = is_root() if root is None else root
        self._sudo_commands = SUDO_COMMANDS | set(extra_sudo_commands)

        self._secrets: dict[str, str] = {}
        self._rejected: set[str] = set()
        self._passwordless: bool | None = None

        self._command_cache: dict[str, str] = {}

        self._prerequisites: set[str] = set()
        self._prerequisite_locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # ── Secrets ─────────────────────────────────────────────────

    @property
    def can_prompt(self) -> bool:
        return self._prompt is not None

    def get_secret(self, key: str, label: str = "") -> str:
        """Return the cached secret for ``key``, prompting once if needed.

        Raises:
            CommandError: No prompt available, or the secret was already
                rejected in this run.
        """
        if key in self._rejected:
            raise CommandError(f"Password for '{key}' was rejected earlier in this run")
        if key in self._secrets:
            return self._secrets[key]
        if self._prompt is None:
            raise CommandError(f"Password for '{key}' is required but prompting is disabled")

        secret = self._prompt(key, label or f"Password for {key}")
        register_secret(secret)
        self._secrets[key] = secret
        return secret

    def set_secret(self, key: str, secret: str) -> None:
        register_secret(secret)
        self._secrets[key] = secret
        self._rejected.discard(key)

    def reject_secret(self, key: str) -> None:
        """Forget a secret that turned out to be wrong; do not prompt again."""
        self._secrets.pop(key, None)
        self._rejected.add(key)

    def clear(self) -> None:
        """Drop every cached secret and command result."""
        self._secrets.clear()
        self._rejected.clear()
        self._command_cache.clear()
        forget_secrets()

    # ── Commands ────────────────────────────────────────────────

    def needs_elevation(self, command: str) -> bool:
        """Generic heuristic: Linux, not root, and a root-only tool leads."""
        if self.os_name != "linux" or self._root:
            return False
        try:
            tokens = shlex.split(command)
        except ValueError:
            tokens = command.split()
        if not tokens:
            return False
        first = tokens[0]
        if first == "sudo" or first in self._sudo_commands:
            return True
        return first in ("sh", "bash") and any("sudo" in t.split() for t in tokens[1:])

    def execute(self, command: str, needs_sudo: bool | None = None) -> str:
        """Run ``command`` through ``sh -c`` and return its output.

        Args:
            command: Shell command text.
            needs_sudo: Handler override; None applies ``needs_elevation``.

        Raises:
            CommandError: The command failed, or elevation was impossible.
        """
        if command in self._command_cache:
            logger.debug("Skipping repeated command: %s", command)
            return self._command_cache[command]

        elevate = self.needs_elevation(command) if needs_sudo is None else needs_sudo
        if command.startswith("sudo "):
            command_text = command[len("sudo ") :]
            elevate = True
        else:
            command_text = command

        if elevate and not self._root:
            result = self._run_elevated(command_text)
        else:
            result = self.executor.run_shell(command_text)

        if not result.ok:
            raise CommandError(
                f"Command failed: {result.error}",
                command=command,
                output=result.output,
            )

        output = result.output
        self._command_cache[command] = output
        return output

    def run(self, argv: list[str]) -> CommandResult:
        """Run ``argv`` directly: no elevation, no caching, never raises."""
        return self.executor.run(argv)

    def _run_elevated(self, command: str) -> CommandResult:
        if self._passwordless is None:
            self._passwordless = self.executor.run(["sudo", "-n", "true"]).ok
            logger.debug("Passwordless sudo: %s", self._passwordless)

        if self._passwordless:
            return self.executor.run(["sudo", "-n", "sh", "-c", command])

        password = self.get_secret(SUDO_KEY, "[sudo] password")
        result = self.executor.run(
            ["sudo", "-S", "-k", "-p", "", "sh", "-c", command],
            input=password + "\n",
        )
        if not result.ok and any(m in result.stderr.lower() for m in _WRONG_PASSWORD_MARKERS):
            self.reject_secret(SUDO_KEY)
            raise CommandError("Wrong sudo password", command=command)
        return result

    # ── Prerequisites ───────────────────────────────────────────

    def ensure_prerequisite(
        self,
        name: str,
        is_installed: Callable[[], bool],
        install: Callable[[], None],
    ) -> bool:
        """Install a prerequisite tool at most once.

        Returns:
            True if this call ran ``install``; False if it was present.
        """
        if name in self._prerequisites or is_installed():
            return False

        with self._locks_guard:
            lock = self._prerequisite_locks.setdefault(name, threading.Lock())

        with lock:
            if name in self._prerequisites or is_installed():
                return False
            logger.info("Installing prerequisite: %s", name)
            install()
            self._prerequisites.add(name)
            return True
