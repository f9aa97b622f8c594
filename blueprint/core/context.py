"""
Process context — where blueprint keeps its state and which OS it runs on.

Module-level singleton, set once at startup by the CLI (or by tests):

    - CLI:    main.py  → context.set_blueprint_home(config.state_dir)
    - Tests:  conftest → context.set_blueprint_home(tmp_path)

When unset, the home directory comes from ``BLUEPRINT_HOME`` or falls
back to ``~/.blueprint``.
"""

from __future__ import annotations

import os
import platform
from pathlib import Path
from typing import Optional

_blueprint_home: Optional[Path] = None

_OS_NAMES = {"darwin": "mac", "linux": "linux", "windows": "windows"}


def set_blueprint_home(home: Path | None) -> None:
    """Register the state directory for the current process."""
    global _blueprint_home
    _blueprint_home = home


def get_blueprint_home() -> Path:
    """Return the state directory (not created here)."""
    if _blueprint_home is not None:
        return _blueprint_home
    env = os.environ.get("BLUEPRINT_HOME")
    if env:
        return Path(env).expanduser()
    return Path.home() / ".blueprint"


def current_os() -> str:
    """Normalized OS name as used in ``on:`` clauses and status records."""
    system = platform.system().lower()
    return _OS_NAMES.get(system, system)


def is_root() -> bool:
    geteuid = getattr(os, "geteuid", None)
    return geteuid is not None and geteuid() == 0
