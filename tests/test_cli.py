"""
Tests for CLI commands — plan, apply, status, encrypt, history and
global options.
"""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from blueprint.core.services.crypto import decrypt_bytes
from blueprint.main import cli


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """Config pinning the state directory and OS for the run."""
    path = tmp_path / "config.yml"
    path.write_text(f"state_dir: {tmp_path / 'state'}\nos_name: linux\n")
    return path


def _invoke(config_file: Path, *args: str):
    return CliRunner().invoke(cli, ["--config", str(config_file), *args])


class TestCLIGlobal:
    def test_help(self):
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "declare what a machine should have" in result.output

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_bad_config(self, tmp_path: Path):
        path = tmp_path / "config.yml"
        path.write_text("- not a mapping\n")
        result = CliRunner().invoke(cli, ["--config", str(path), "status"])
        assert result.exit_code == 1

    def test_missing_config(self, tmp_path: Path):
        result = CliRunner().invoke(cli, ["--config", str(tmp_path / "nope.yml"), "status"])
        assert result.exit_code == 1


class TestPlanCommand:
    def test_plan_lists_steps(self, config_file, write_blueprint, tmp_path):
        bp = write_blueprint("setup.bp", f"mkdir {tmp_path / 'a'}\ninstall git group: extra\n")
        result = _invoke(config_file, "plan", str(bp), "--skip-group", "extra")
        assert result.exit_code == 0
        assert "Applying mkdir" in result.output
        assert "(excluded)" in result.output
        assert not (tmp_path / "a").exists()

    def test_plan_json(self, config_file, write_blueprint, tmp_path):
        bp = write_blueprint("setup.bp", f"mkdir {tmp_path / 'a'} perms: 0700\n")
        result = _invoke(config_file, "plan", str(bp), "--json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["os"] == "linux"
        assert data["steps"][0]["command"] == (
            f"mkdir -p {tmp_path / 'a'} && chmod 0700 {tmp_path / 'a'}"
        )

    def test_plan_cycle_exit_code(self, config_file, write_blueprint):
        bp = write_blueprint("setup.bp", "mkdir /a id: a after: b\nmkdir /b id: b after: a\n")
        result = _invoke(config_file, "plan", str(bp))
        assert result.exit_code == 1
        assert "cycle" in result.output

    def test_plan_parse_error_json(self, config_file, write_blueprint):
        bp = write_blueprint("setup.bp", "nonsense here\n")
        result = _invoke(config_file, "plan", str(bp), "--json")
        assert result.exit_code == 1
        assert "Unknown directive" in json.loads(result.output)["error"]


class TestApplyCommand:
    def test_apply_creates_directory(self, config_file, write_blueprint, tmp_path):
        target = tmp_path / "made" / "here"
        bp = write_blueprint("setup.bp", f"mkdir {target}\n")

        result = _invoke(config_file, "apply", str(bp), "--no-input")

        assert result.exit_code == 0, result.output
        assert target.is_dir()
        assert "Result: OK" in result.output
        status = json.loads((tmp_path / "state" / "status.json").read_text())
        assert status["mkdirs"][0]["path"] == str(target)

    def test_apply_rule_failure_exit_code(self, config_file, write_blueprint, tmp_path):
        bp = write_blueprint("setup.bp", f"mkdir {tmp_path / 'x'} perms: rwx\n")
        result = _invoke(config_file, "apply", str(bp), "--no-input")
        assert result.exit_code == 2
        assert "Invalid permissions" in result.output

    def test_apply_json(self, config_file, write_blueprint, tmp_path):
        bp = write_blueprint("setup.bp", f"mkdir {tmp_path / 'j'}\n")
        result = _invoke(config_file, "apply", str(bp), "--json", "--no-input")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["report"]["status"] == "ok"

    def test_apply_skip_id(self, config_file, write_blueprint, tmp_path):
        bp = write_blueprint("setup.bp", f"mkdir {tmp_path / 's'} id: scratch\n")
        result = _invoke(config_file, "apply", str(bp), "--skip-id", "scratch", "--no-input")
        assert result.exit_code == 0
        assert not (tmp_path / "s").exists()

    def test_apply_removes_drift(self, config_file, write_blueprint, tmp_path):
        keep, drop = tmp_path / "keep", tmp_path / "drop"
        bp = write_blueprint("setup.bp", f"mkdir {keep}\nmkdir {drop}\n")
        assert _invoke(config_file, "apply", str(bp), "--no-input").exit_code == 0

        bp.write_text(f"mkdir {keep}\n")
        assert _invoke(config_file, "apply", str(bp), "--no-input").exit_code == 0

        assert keep.is_dir()
        assert not drop.exists()


class TestStatusAndHistory:
    def test_status_empty(self, config_file):
        result = _invoke(config_file, "status")
        assert result.exit_code == 0
        assert "No resources recorded" in result.output

    def test_status_after_apply(self, config_file, write_blueprint, tmp_path):
        bp = write_blueprint("setup.bp", f"mkdir {tmp_path / 'd'}\n")
        _invoke(config_file, "apply", str(bp), "--no-input")

        result = _invoke(config_file, "status", "--json")
        data = json.loads(result.output)
        assert data["total"] == 1
        assert data["resources"]["mkdirs"][0]["os"] == "linux"

        other = _invoke(config_file, "status", "--blueprint", str(tmp_path / "other.bp"), "--json")
        assert json.loads(other.output)["total"] == 0

    def test_history(self, config_file, write_blueprint, tmp_path):
        bp = write_blueprint("setup.bp", f"mkdir {tmp_path / 'd'}\n")
        _invoke(config_file, "apply", str(bp), "--no-input")
        _invoke(config_file, "apply", str(bp), "--no-input")

        data = json.loads(_invoke(config_file, "history", "--json").output)
        assert len(data) == 2
        assert data[0]["run_id"] != data[1]["run_id"]

        text = _invoke(config_file, "history", "-n", "1").output
        assert text.count("run-") == 1

    def test_history_run_steps(self, config_file, write_blueprint, tmp_path):
        bp = write_blueprint("setup.bp", f"mkdir {tmp_path / 'd'}\nmkdir {tmp_path / 'e'} perms: rwx\n")
        _invoke(config_file, "apply", str(bp), "--no-input")

        text = _invoke(config_file, "history", "1").output
        assert f"$ mkdir -p {tmp_path / 'd'}" in text
        assert "✗" in text

        data = json.loads(_invoke(config_file, "history", "1", "--json").output)
        assert [r["status"] for r in data["records"]] == ["success", "error"]

    def test_history_single_step(self, config_file, write_blueprint, tmp_path):
        bp = write_blueprint("setup.bp", f"mkdir {tmp_path / 'e'} perms: rwx\n")
        _invoke(config_file, "apply", str(bp), "--no-input")
        run_id = json.loads(_invoke(config_file, "history", "--json").output)[0]["run_id"]

        result = _invoke(config_file, "history", run_id, "1")
        assert result.exit_code == 0
        assert "Invalid permissions" in result.output

        step = json.loads(_invoke(config_file, "history", run_id, "1", "--json").output)
        assert step["status"] == "error"

        assert _invoke(config_file, "history", run_id, "2").exit_code == 1

    def test_history_unknown_run(self, config_file):
        assert _invoke(config_file, "history", "run-nope").exit_code == 1

    def test_history_empty(self, config_file):
        assert "No runs recorded" in _invoke(config_file, "history").output


class TestEncryptCommand:
    def test_encrypt(self, config_file, tmp_path):
        source = tmp_path / "secret.txt"
        source.write_text("shh")
        result = _invoke(config_file, "encrypt", str(source), "--password", "pw")
        assert result.exit_code == 0
        encrypted = tmp_path / "secret.txt.enc"
        assert decrypt_bytes(encrypted.read_bytes(), "pw") == b"shh"

    def test_encrypt_then_apply_decrypt(self, config_file, write_blueprint, tmp_path):
        source = tmp_path / "key"
        source.write_text("PRIVATE")
        _invoke(config_file, "encrypt", str(source), "-o", str(tmp_path / "key.enc"),
                "--password", "pw")
        dest = tmp_path / "out" / "key"
        bp = write_blueprint("setup.bp", f"decrypt key.enc to: {dest}\n")

        result = CliRunner().invoke(
            cli, ["--config", str(config_file), "apply", str(bp)], input="pw\n"
        )

        assert result.exit_code == 0, result.output
        assert dest.read_text() == "PRIVATE"
