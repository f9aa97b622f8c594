"""
Tests for core models — Rule, Status records and ExecutionRecord.
"""

from pathlib import Path

import pytest

from blueprint.core.errors import ParseError
from blueprint.core.models import (
    AsdfStatus,
    ExecutionRecord,
    MkdirStatus,
    Package,
    PackageStatus,
    Rule,
    Status,
    command_succeeded,
)
from blueprint.core.models.status import normalize_blueprint, normalize_path

# ── Rule ─────────────────────────────────────────────────────────────


class TestRule:
    def test_package_str(self):
        assert str(Package(name="code", package_manager="snap")) == "snap:code"
        assert str(Package(name="git")) == "git"

    def test_rule_is_frozen(self):
        rule = Rule(kind="mkdir", mkdir="/tmp/x")
        with pytest.raises(Exception):
            rule.mkdir = "/tmp/y"

    def test_applies_to_everywhere_by_default(self):
        rule = Rule(kind="install", packages=(Package(name="git"),))
        assert rule.applies_to("linux")
        assert rule.applies_to("mac")

    def test_applies_to_listed_os_only(self):
        rule = Rule(kind="install", packages=(Package(name="git"),), os_list=("mac",))
        assert rule.applies_to("mac")
        assert not rule.applies_to("linux")

    def test_dependency_key_prefers_id(self):
        rule = Rule(kind="clone", id="dotfiles", clone_url="u", clone_path="/r")
        assert rule.dependency_key == "dotfiles"

    def test_dependency_key_fallbacks(self):
        assert Rule(kind="install", packages=(Package(name="git"),)).dependency_key == "git"
        assert Rule(kind="mkdir", mkdir="/tmp/x").dependency_key == "/tmp/x"
        assert Rule(kind="asdf", asdf_packages=("nodejs@20",)).dependency_key == "asdf"
        assert Rule(kind="ollama", ollama_models=("llama3",)).dependency_key == "llama3"

    def test_uninstall_dependency_key(self):
        rule = Rule(kind="uninstall", mkdir="/tmp/x")
        assert rule.dependency_key == "uninstall-/tmp/x"


class TestPackageKey:
    def test_default_manager_is_bare_name(self):
        assert Package(name="git").key("linux") == "git"
        assert Package(name="git", package_manager="apt").key("linux") == "git"
        assert Package(name="jq", package_manager="homebrew").key("mac") == "jq"

    def test_other_manager_is_part_of_key(self):
        assert Package(name="code", package_manager="snap").key("linux") == "snap:code"
        assert Package(name="jq", package_manager="brew").key("linux") == "brew:jq"

    def test_status_record_uses_its_os(self):
        on_mac = PackageStatus(name="jq", package_manager="brew", blueprint="/a.bp", os="mac")
        on_linux = on_mac.model_copy(update={"os": "linux"})
        assert on_mac.key() == "jq"
        assert on_linux.key() == "brew:jq"


class TestNormalizeBlueprint:
    @pytest.mark.parametrize(
        "reference",
        ["https://github.com/me/setup.git@main", "git@github.com:me/setup.git", "ssh://host/repo.git"],
    )
    def test_remote_references_kept_verbatim(self, reference):
        assert normalize_blueprint(reference) == reference

    def test_local_paths_normalized(self, isolated_home: Path):
        assert normalize_blueprint("~/setup.bp") == str(isolated_home.resolve() / "setup.bp")


class TestConcreteKind:
    def test_declared_kind_is_its_own(self):
        assert Rule(kind="mkdir", mkdir="/x").concrete_kind() == "mkdir"

    @pytest.mark.parametrize(
        "fields, expected",
        [
            ({"packages": (Package(name="git"),)}, "install"),
            ({"clone_path": "/r"}, "clone"),
            ({"decrypt_path": "/k"}, "decrypt"),
            ({"mkdir": "/d"}, "mkdir"),
            ({"asdf_packages": ("nodejs@20",)}, "asdf"),
            ({"known_hosts": "github.com"}, "known_hosts"),
            ({"gpg_keyring": "docker"}, "gpg-key"),
            ({"homebrew_packages": ("jq",)}, "homebrew"),
            ({"ollama_models": ("llama3",)}, "ollama"),
        ],
    )
    def test_recovered_from_fields(self, fields, expected):
        assert Rule(kind="uninstall", **fields).concrete_kind() == expected

    def test_packages_win_over_later_kinds(self):
        rule = Rule(kind="uninstall", packages=(Package(name="git"),), mkdir="/d")
        assert rule.concrete_kind() == "install"

    def test_empty_uninstall_rejected(self):
        with pytest.raises(ParseError):
            Rule(kind="uninstall").concrete_kind()


# ── Status ───────────────────────────────────────────────────────────


class TestStatus:
    def test_empty(self):
        s = Status()
        assert s.total == 0
        assert s.records("packages") == []

    def test_upsert_appends_new_identity(self):
        s = Status()
        s.upsert(PackageStatus(name="git", blueprint="/a.bp", os="linux"))
        s.upsert(PackageStatus(name="curl", blueprint="/a.bp", os="linux"))
        assert [p.name for p in s.packages] == ["git", "curl"]

    def test_upsert_replaces_same_identity(self):
        s = Status()
        s.upsert(PackageStatus(name="git", blueprint="/a.bp", os="linux"))
        s.upsert(PackageStatus(name="git", package_manager="snap", blueprint="/a.bp", os="linux"))
        assert len(s.packages) == 1
        assert s.packages[0].package_manager == "snap"

    def test_upsert_keeps_timestamp_when_unchanged(self):
        s = Status()
        s.upsert(PackageStatus(name="git", blueprint="/a.bp", os="linux", timestamp="t1"))
        s.upsert(PackageStatus(name="git", blueprint="/a.bp", os="linux", timestamp="t2"))
        assert s.packages[0].timestamp == "t1"

    def test_same_key_different_blueprint_coexist(self):
        s = Status()
        s.upsert(MkdirStatus(path="/x", blueprint="/a.bp", os="mac"))
        s.upsert(MkdirStatus(path="/x", blueprint="/b.bp", os="mac"))
        assert len(s.mkdirs) == 2

        assert s.remove("mkdirs", "/x", "/a.bp", "mac")
        assert len(s.mkdirs) == 1
        assert s.mkdirs[0].blueprint == "/b.bp"

    def test_same_key_different_os_coexist(self):
        s = Status()
        s.upsert(PackageStatus(name="git", blueprint="/a.bp", os="mac"))
        s.upsert(PackageStatus(name="git", blueprint="/a.bp", os="linux"))
        assert len(s.packages) == 2

    def test_remove_missing_returns_false(self):
        assert not Status().remove("packages", "git", "/a.bp", "linux")

    def test_scoped(self):
        s = Status()
        s.upsert(PackageStatus(name="git", blueprint="/a.bp", os="linux"))
        s.upsert(PackageStatus(name="jq", blueprint="/b.bp", os="linux"))
        s.upsert(PackageStatus(name="vim", blueprint="/a.bp", os="mac"))
        scoped = s.scoped("packages", "/a.bp", "linux")
        assert [r.key() for r in scoped] == ["git"]

    def test_find(self):
        s = Status()
        s.upsert(PackageStatus(name="git", blueprint="/a.bp", os="linux"))
        assert s.find("packages", "git", "/a.bp", "linux") is not None
        assert s.find("packages", "git", "/a.bp", "mac") is None

    def test_path_keys_are_normalized(self, isolated_home: Path):
        record = MkdirStatus(path="~/x", blueprint="/a.bp", os="linux")
        assert record.key() == str(isolated_home.resolve() / "x")
        assert record.matches(normalize_path("~/x"), "/a.bp", "linux")

    def test_asdf_versions_coexist(self):
        s = Status()
        s.upsert(AsdfStatus(plugin="nodejs", version="18.0.0", blueprint="/a.bp", os="linux"))
        s.upsert(AsdfStatus(plugin="nodejs", version="20.0.0", blueprint="/a.bp", os="linux"))
        assert len(s.asdfs) == 2

        s.remove("asdfs", "nodejs@18.0.0", "/a.bp", "linux")
        assert [a.version for a in s.asdfs] == ["20.0.0"]

    def test_round_trip_through_json(self):
        s = Status()
        s.upsert(PackageStatus(name="git", blueprint="/a.bp", os="linux"))
        s.upsert(AsdfStatus(plugin="nodejs", version="20.0.0", blueprint="/a.bp", os="linux"))
        restored = Status.model_validate_json(s.model_dump_json())
        assert restored == s


# ── ExecutionRecord ──────────────────────────────────────────────────


class TestExecutionRecord:
    def test_factories(self):
        assert ExecutionRecord.success("ls").ok
        assert ExecutionRecord.failure("ls", error="boom").failed
        skipped = ExecutionRecord.skip("ls", "excluded")
        assert not skipped.ok and not skipped.failed
        assert skipped.error == "excluded"

    def test_command_succeeded(self):
        records = [ExecutionRecord.success("apt-get install -y git")]
        assert command_succeeded(records, "apt-get install -y git")
        assert not command_succeeded(records, "apt-get install -y curl")

    def test_last_record_for_command_wins(self):
        records = [
            ExecutionRecord.success("make"),
            ExecutionRecord.failure("make", error="boom"),
        ]
        assert not command_succeeded(records, "make")
