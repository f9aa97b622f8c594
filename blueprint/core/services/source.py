"""
Blueprint sources — local files and blueprints fetched from git.

A remote reference has the form ``<repo-url>[@branch][:path]``:

    https://github.com/me/setup.git
    https://github.com/me/setup.git@main
    git@github.com:me/setup.git@work:machines/laptop.bp

``path`` defaults to ``setup.bp``. The repository is cloned into a
temporary directory that lives as long as the ``open_blueprint`` block.
The reference string itself (not the temporary path) is the blueprint's
provenance in Status, so drift detection works across runs.
"""

from __future__ import annotations

import logging
import re
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from blueprint.adapters.base import Executor
from blueprint.adapters.vcs.git import GitClient
from blueprint.core.errors import ParseError
from blueprint.core.models.status import REMOTE_PREFIX

logger = logging.getLogger(__name__)

DEFAULT_SETUP_FILE = "setup.bp"

_REMOTE_PREFIX = re.compile(rf"^{REMOTE_PREFIX}")
_REMOTE_GIT = re.compile(
    rf"^(?P<url>{REMOTE_PREFIX}.+?\.git)(?:@(?P<branch>[^:@]+))?(?::(?P<path>.+))?$"
)


@dataclass(frozen=True)
class RemoteBlueprint:
    url: str
    branch: str = ""
    path: str = DEFAULT_SETUP_FILE


@dataclass(frozen=True)
class BlueprintSource:
    """A blueprint ready to parse."""

    path: Path
    identity: str
    remote: RemoteBlueprint | None = None

    @property
    def anchor_dir(self) -> Path | None:
        """Where relative target paths resolve; None means next to the file."""
        return Path.cwd() if self.remote else None


def parse_remote(reference: str) -> RemoteBlueprint | None:
    """Split a remote reference into its parts, or None for a local path."""
    m = _REMOTE_GIT.match(reference)
    if m:
        return RemoteBlueprint(
            url=m["url"],
            branch=m["branch"] or "",
            path=m["path"] or DEFAULT_SETUP_FILE,
        )
    if _REMOTE_PREFIX.match(reference):
        return RemoteBlueprint(url=reference)
    return None


@contextmanager
def open_blueprint(
    reference: str | Path,
    executor: Executor,
    https_fallback: bool = True,
) -> Iterator[BlueprintSource]:
    """Yield a parseable source for a local path or a remote reference.

    Raises:
        GitError: The repository could not be cloned.
        ParseError: The blueprint file is missing from the checkout.
    """
    reference = str(reference)
    remote = parse_remote(reference)
    if remote is None:
        path = Path(reference).expanduser().resolve()
        yield BlueprintSource(path=path, identity=str(path))
        return

    with tempfile.TemporaryDirectory(prefix="blueprint-") as tmp:
        checkout = Path(tmp) / "repo"
        logger.info("Fetching %s%s", remote.url, f" ({remote.branch})" if remote.branch else "")
        GitClient(executor, https_fallback=https_fallback).clone_or_update(
            remote.url, checkout, remote.branch
        )

        path = (checkout / remote.path).resolve()
        if not path.is_relative_to(checkout.resolve()):
            raise ParseError(f"Blueprint path {remote.path!r} escapes the repository")
        if not path.is_file():
            raise ParseError(f"{remote.path} not found in {remote.url}")

        yield BlueprintSource(path=path, identity=reference, remote=remote)
