"""
Engine configuration — reads ~/.blueprint/config.yml into EngineConfig.

The file is optional; every field has a default. ``BLUEPRINT_CONFIG``
points at an explicit file, ``BLUEPRINT_HOME`` moves the state directory.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from blueprint.core.context import get_blueprint_home

logger = logging.getLogger(__name__)

CONFIG_FILE = "config.yml"


class ConfigError(Exception):
    """Raised when engine configuration is invalid."""


class EngineConfig(BaseModel):
    """Runtime settings for the engine."""

    state_dir: Path = Field(default_factory=get_blueprint_home)
    status_file: str = "status.json"
    history_file: str = "history.ndjson"

    # Force an OS name instead of detecting it (mac, linux, windows)
    os_name: str | None = None

    # Extra first-tokens the session treats as needing sudo
    extra_sudo_commands: list[str] = Field(default_factory=list)

    # Retry SSH clones over HTTPS on authentication failure
    https_fallback: bool = True

    @property
    def status_path(self) -> Path:
        return self.state_dir / self.status_file

    @property
    def history_path(self) -> Path:
        return self.state_dir / self.history_file


def find_config_file() -> Path | None:
    """Locate the config file: ``BLUEPRINT_CONFIG`` first, then the state dir."""
    env = os.environ.get("BLUEPRINT_CONFIG")
    if env:
        return Path(env).expanduser()
    candidate = get_blueprint_home() / CONFIG_FILE
    return candidate if candidate.is_file() else None


def load_config(path: Path | None = None) -> EngineConfig:
    """Load and validate engine configuration.

    Args:
        path: Explicit config file. If None, ``find_config_file`` is used
            and a missing file yields the defaults.

    Raises:
        ConfigError: If an explicit file is missing, or any file is invalid.
    """
    if path is None:
        path = find_config_file()
        if path is None:
            logger.debug("No config file — using defaults")
            return EngineConfig()

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        config = EngineConfig.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    config.state_dir = config.state_dir.expanduser()
    return config
