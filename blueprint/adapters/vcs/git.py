"""
Git client — clone-or-update for the clone handler.

Uses the git CLI through an Executor, never a git library. An SSH clone
that fails on authentication is retried over HTTPS, which is enough for
public repositories declared with ``git@host:owner/repo`` URLs.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from blueprint.adapters.base import Executor
from blueprint.core.errors import GitError

logger = logging.getLogger(__name__)

CLONED = "Cloned"
UPDATED = "Updated"
UP_TO_DATE = "Already up to date"

_SCP_URL = re.compile(r"^(?:[\w.\-]+@)?([\w.\-]+):(?!//)(.+)$")
_SSH_URL = re.compile(r"^ssh://(?:[\w.\-]+@)?([\w.\-]+)(?::\d+)?/(.+)$")

_AUTH_MARKERS = (
    "permission denied",
    "publickey",
    "could not read from remote repository",
    "host key verification failed",
)


@dataclass
class CloneResult:
    """Outcome of ``clone_or_update``."""

    old_sha: str
    new_sha: str
    status: str

    @property
    def message(self) -> str:
        if self.status == CLONED:
            return f"Cloned (SHA: {self.new_sha[:7]})"
        if self.status == UPDATED:
            return f"Updated (SHA changed: {self.old_sha[:7]} → {self.new_sha[:7]})"
        return UP_TO_DATE


def ssh_to_https(url: str) -> str | None:
    """``git@github.com:me/repo.git`` → ``https://github.com/me/repo.git``."""
    for pattern in (_SSH_URL, _SCP_URL):
        m = pattern.match(url)
        if m:
            host, repo_path = m.groups()
            return f"https://{host}/{repo_path.lstrip('/')}"
    return None


class GitClient:
    """Thin wrapper over the git CLI."""

    def __init__(self, executor: Executor, https_fallback: bool = True):
        self._executor = executor
        self._https_fallback = https_fallback

    def clone_or_update(self, url: str, path: str | Path, branch: str = "") -> CloneResult:
        """Clone ``url`` into ``path``, or fast-forward an existing checkout.

        Raises:
            GitError: If git fails, or ``path`` exists and is not a repository.
        """
        dest = Path(path).expanduser()

        if (dest / ".git").exists():
            return self._update(dest, branch)

        if dest.exists() and any(dest.iterdir()):
            raise GitError(f"{dest} exists and is not a git repository")

        self._clone(url, dest, branch)
        return CloneResult(old_sha="", new_sha=self.head_sha(dest), status=CLONED)

    def head_sha(self, path: Path) -> str:
        return self._git(["rev-parse", "HEAD"], cwd=path)

    # ── Helpers ─────────────────────────────────────────────────

    def _update(self, dest: Path, branch: str) -> CloneResult:
        old_sha = self.head_sha(dest)
        self._git(["fetch", "--quiet", "origin"], cwd=dest)
        if branch:
            self._git(["checkout", "--quiet", branch], cwd=dest)
        self._git(["pull", "--ff-only", "--quiet"], cwd=dest)
        new_sha = self.head_sha(dest)

        status = UP_TO_DATE if old_sha == new_sha else UPDATED
        logger.debug("%s: %s (%s → %s)", dest, status, old_sha[:7], new_sha[:7])
        return CloneResult(old_sha=old_sha, new_sha=new_sha, status=status)

    def _clone(self, url: str, dest: Path, branch: str) -> None:
        try:
            self._git(self._clone_args(url, dest, branch))
        except GitError as e:
            https_url = ssh_to_https(url)
            if not (self._https_fallback and https_url and _is_auth_error(str(e))):
                raise
            logger.info("SSH clone of %s failed, retrying over HTTPS", url)
            self._git(self._clone_args(https_url, dest, branch))

    @staticmethod
    def _clone_args(url: str, dest: Path, branch: str) -> list[str]:
        args = ["clone", "--quiet"]
        if branch:
            args += ["--branch", branch]
        return [*args, "--", url, str(dest)]

    def _git(self, args: list[str], cwd: Path | None = None) -> str:
        """Run a git command and return stripped stdout."""
        result = self._executor.run(["git", *args], cwd=str(cwd) if cwd else None)
        if not result.ok:
            raise GitError(result.stderr.strip() or f"git {args[0]} failed")
        return result.stdout.strip()


def _is_auth_error(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in _AUTH_MARKERS)
