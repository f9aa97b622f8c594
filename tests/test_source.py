"""
Tests for blueprint sources — remote references and applying from git.
"""

from pathlib import Path

import pytest

from blueprint.adapters.mock import FakeExecutor
from blueprint.core.engine.session import Session
from blueprint.core.errors import GitError, ParseError
from blueprint.core.persistence.status_file import load_status
from blueprint.core.services.source import (
    DEFAULT_SETUP_FILE,
    RemoteBlueprint,
    open_blueprint,
    parse_remote,
)
from blueprint.core.use_cases.apply import (
    EXIT_INVALID,
    EXIT_OK,
    apply_blueprint,
    plan_blueprint,
)

REPO = "https://github.com/me/setup.git"


class CloningExecutor(FakeExecutor):
    """A fake whose ``git clone`` materializes ``files`` in the destination."""

    def __init__(self, files: dict[str, str]):
        super().__init__()
        self.files = files

    def run(self, argv, *, input=None, cwd=None):
        result = super().run(argv, input=input, cwd=cwd)
        if argv[:2] == ["git", "clone"] and result.ok:
            dest = Path(argv[-1])
            for name, content in self.files.items():
                (dest / name).parent.mkdir(parents=True, exist_ok=True)
                (dest / name).write_text(content)
        return result


# ── Reference parsing ────────────────────────────────────────────────


class TestParseRemote:
    @pytest.mark.parametrize(
        "reference, expected",
        [
            (REPO, RemoteBlueprint(url=REPO)),
            (f"{REPO}@main", RemoteBlueprint(url=REPO, branch="main")),
            (f"{REPO}:machines/laptop.bp", RemoteBlueprint(url=REPO, path="machines/laptop.bp")),
            (
                "git@github.com:me/setup.git@work:laptop.bp",
                RemoteBlueprint(url="git@github.com:me/setup.git", branch="work", path="laptop.bp"),
            ),
            (
                "https://me.github.io/tools/setup.git",
                RemoteBlueprint(url="https://me.github.io/tools/setup.git"),
            ),
            ("https://example.com/setup", RemoteBlueprint(url="https://example.com/setup")),
        ],
    )
    def test_remote(self, reference, expected):
        assert parse_remote(reference) == expected

    @pytest.mark.parametrize("reference", ["setup.bp", "/etc/blueprint/setup.bp", "~/a@b.bp"])
    def test_local(self, reference):
        assert parse_remote(reference) is None

    def test_default_file(self):
        assert parse_remote(REPO).path == DEFAULT_SETUP_FILE


# ── Opening ──────────────────────────────────────────────────────────


class TestOpenBlueprint:
    def test_local_file(self, tmp_path: Path):
        path = tmp_path / "setup.bp"
        with open_blueprint(path, FakeExecutor()) as source:
            assert source.path == path.resolve()
            assert source.identity == str(path.resolve())
            assert source.remote is None
            assert source.anchor_dir is None

    def test_remote_is_cloned_and_removed(self):
        executor = CloningExecutor({"setup.bp": "mkdir ~/x\n"})

        with open_blueprint(f"{REPO}@main", executor) as source:
            checkout = source.path.parent
            assert source.path.read_text() == "mkdir ~/x\n"
            assert source.identity == f"{REPO}@main"
            assert source.anchor_dir == Path.cwd()

        assert executor.commands[0].startswith(f"git clone --quiet --branch main -- {REPO} ")
        assert not checkout.exists()

    def test_missing_file_in_repository(self):
        executor = CloningExecutor({"other.bp": ""})
        with pytest.raises(ParseError, match="setup.bp not found"):
            with open_blueprint(REPO, executor):
                pass

    def test_path_cannot_escape_checkout(self):
        with pytest.raises(ParseError, match="escapes"):
            with open_blueprint(f"{REPO}:../../etc/passwd", CloningExecutor({})):
                pass

    def test_clone_failure(self):
        executor = FakeExecutor()
        executor.set_failure("git clone", error="fatal: repository not found")
        with pytest.raises(GitError, match="not found"):
            with open_blueprint(REPO, executor):
                pass


# ── Applying from git ────────────────────────────────────────────────


class TestRemoteApply:
    def test_status_scoped_to_reference(self, engine_config, isolated_home):
        executor = CloningExecutor({"setup.bp": "mkdir ~/x\nmkdir ~/y\n"})
        session = Session(executor, os_name="linux", root=True)

        result = apply_blueprint(REPO, session, config=engine_config)

        assert result.exit_code == EXIT_OK
        assert result.blueprint == REPO
        mkdirs = load_status(engine_config.status_path).mkdirs
        assert [(m.path, m.blueprint) for m in mkdirs] == [("~/x", REPO), ("~/y", REPO)]

    def test_drift_detected_across_checkouts(self, engine_config, isolated_home):
        first = CloningExecutor({"setup.bp": "mkdir ~/x\nmkdir ~/y\n"})
        apply_blueprint(REPO, Session(first, os_name="linux", root=True), config=engine_config)
        (isolated_home / "y").mkdir()

        second = CloningExecutor({"setup.bp": "mkdir ~/x\n"})
        result = apply_blueprint(
            REPO, Session(second, os_name="linux", root=True), config=engine_config
        )

        assert result.exit_code == EXIT_OK
        assert second.ran(f"rm -rf {isolated_home / 'y'}")
        assert [m.path for m in load_status(engine_config.status_path).mkdirs] == ["~/x"]

    def test_relative_targets_anchor_at_working_directory(
        self, engine_config, tmp_path, monkeypatch
    ):
        monkeypatch.chdir(tmp_path)
        executor = CloningExecutor({"setup.bp": "mkdir build\n"})

        result = plan_blueprint(REPO, Session(executor, os_name="linux", root=True),
                                config=engine_config)

        assert result.steps[0]["command"] == f"mkdir -p {tmp_path / 'build'}"

    def test_unreachable_repository(self, engine_config):
        executor = FakeExecutor()
        executor.set_failure("git clone", error="fatal: could not resolve host")
        result = apply_blueprint(REPO, Session(executor, os_name="linux", root=True),
                                 config=engine_config)

        assert result.exit_code == EXIT_INVALID
        assert "could not resolve host" in result.error
        assert not engine_config.status_path.exists()
