"""
Status file persistence — atomic read/write for Status.

Status is stored as JSON in ~/.blueprint/status.json. Writes are atomic
(write to temp file, then rename) so a crash mid-write never leaves a
truncated document behind. The file is readable by its owner only.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from blueprint.core.context import get_blueprint_home
from blueprint.core.models.status import Status

logger = logging.getLogger(__name__)

DEFAULT_STATUS_FILE = "status.json"
STATUS_FILE_MODE = 0o600


def default_status_path(home: Path | None = None) -> Path:
    """Get the default status file path."""
    return (home or get_blueprint_home()) / DEFAULT_STATUS_FILE


def load_status(path: Path) -> Status:
    """Load status from a JSON file.

    Args:
        path: Path to the status JSON file.

    Returns:
        Status model. If the file doesn't exist or is unreadable,
        returns an empty status.
    """
    if not path.is_file():
        logger.info("No status file at %s — starting fresh", path)
        return Status()

    try:
        raw = path.read_text(encoding="utf-8")
        status = Status.model_validate(json.loads(raw))
        logger.debug("Loaded status from %s (%d records)", path, status.total)
        return status
    except json.JSONDecodeError as e:
        logger.warning("Corrupt status file %s: %s — starting fresh", path, e)
        return Status()
    except Exception as e:
        logger.warning("Cannot load status from %s: %s — starting fresh", path, e)
        return Status()


def save_status(status: Status, path: Path) -> None:
    """Save status to a JSON file (atomic write, mode 0600).

    Args:
        status: The status to save.
        path: Target path for the status file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    data = status.model_dump(mode="json")
    content = json.dumps(data, indent=2, ensure_ascii=False) + "\n"

    try:
        fd, tmp_path = tempfile.mkstemp(
            dir=path.parent,
            prefix=".status_",
            suffix=".tmp",
        )
        tmp = Path(tmp_path)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.chmod(tmp, STATUS_FILE_MODE)
            tmp.replace(path)
            logger.debug("Status saved to %s", path)
        except Exception:
            tmp.unlink(missing_ok=True)
            raise
    except Exception as e:
        logger.error("Failed to save status to %s: %s", path, e)
        raise
