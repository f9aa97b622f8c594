"""
Shared test fixtures and configuration.
"""

import logging
from pathlib import Path

import pytest

from blueprint.adapters.mock import FakeExecutor
from blueprint.core import context
from blueprint.core.config.loader import EngineConfig
from blueprint.core.engine.session import Session
from blueprint.core.observability.logging_config import RedactSecrets, forget_secrets
from blueprint.handlers.base import HandlerContext


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point HOME and the state directory at a temporary tree."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("BLUEPRINT_CONFIG", raising=False)
    monkeypatch.delenv("BLUEPRINT_HOME", raising=False)
    context.set_blueprint_home(home / ".blueprint")
    yield home
    context.set_blueprint_home(None)


@pytest.fixture
def fake_executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def session(fake_executor: FakeExecutor) -> Session:
    """A Linux session already running as root: no elevation, no prompts."""
    return Session(fake_executor, os_name="linux", root=True)


@pytest.fixture
def handler_context(session: Session, tmp_path: Path) -> HandlerContext:
    return HandlerContext(session=session, base_path=tmp_path)


@pytest.fixture
def engine_config(isolated_home: Path) -> EngineConfig:
    return EngineConfig(state_dir=isolated_home / ".blueprint")


@pytest.fixture
def write_blueprint(tmp_path: Path):
    """Write a blueprint file under tmp_path and return its path."""

    def _write(name: str, content: str) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo whatever setup_logging did during the test."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in root.handlers[:]:
        if any(isinstance(f, RedactSecrets) for f in handler.filters):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
    forget_secrets()
