"""
Tests for Session — elevation, secret caching, command cache and
prerequisite installation.
"""

import threading
import time

import pytest

from blueprint.adapters.mock import FakeExecutor
from blueprint.core.engine.session import SUDO_KEY, Session
from blueprint.core.errors import CommandError


class _Prompt:
    """Counts prompts and answers with a fixed secret."""

    def __init__(self, answer: str = "hunter2"):
        self.answer = answer
        self.calls: list[str] = []

    def __call__(self, key: str, label: str) -> str:
        self.calls.append(key)
        return self.answer


class TestNeedsElevation:
    def _session(self, **kwargs) -> Session:
        kwargs.setdefault("os_name", "linux")
        kwargs.setdefault("root", False)
        return Session(FakeExecutor(), **kwargs)

    def test_package_manager_needs_sudo(self):
        assert self._session().needs_elevation("apt-get install -y git")

    def test_plain_command_does_not(self):
        assert not self._session().needs_elevation("mkdir -p /tmp/x")

    def test_explicit_sudo(self):
        assert self._session().needs_elevation("sudo tee /etc/x")

    def test_shell_wrapper_with_sudo(self):
        assert self._session().needs_elevation("sh -c 'sudo true'")

    def test_never_on_mac(self):
        assert not self._session(os_name="mac").needs_elevation("apt-get install -y git")

    def test_never_as_root(self):
        assert not self._session(root=True).needs_elevation("apt-get install -y git")

    def test_extra_sudo_commands(self):
        session = self._session(extra_sudo_commands=["flatpak"])
        assert session.needs_elevation("flatpak install x")


class TestExecute:
    def test_runs_through_shell(self):
        fake = FakeExecutor(default_output="done")
        session = Session(fake, os_name="linux", root=True)
        assert session.execute("echo hi") == "done"
        assert fake.call_log == [(["sh", "-c", "echo hi"], None)]

    def test_failure_raises_command_error(self):
        fake = FakeExecutor()
        fake.set_failure("false", error="nope")
        session = Session(fake, os_name="linux", root=True)
        with pytest.raises(CommandError) as exc:
            session.execute("false")
        assert exc.value.command == "false"
        assert "nope" in str(exc.value)

    def test_identical_command_runs_once(self):
        fake = FakeExecutor()
        session = Session(fake, os_name="linux", root=True)
        session.execute("apt-get update")
        session.execute("apt-get update")
        assert fake.call_count == 1

    def test_failures_are_not_cached(self):
        fake = FakeExecutor()
        fake.set_failure("flaky")
        session = Session(fake, os_name="linux", root=True)
        for _ in range(2):
            with pytest.raises(CommandError):
                session.execute("flaky")
        assert fake.call_count == 2

    def test_clear_drops_command_cache(self):
        fake = FakeExecutor()
        session = Session(fake, os_name="linux", root=True)
        session.execute("ls")
        session.clear()
        session.execute("ls")
        assert fake.call_count == 2


class TestElevation:
    def test_passwordless_sudo(self):
        fake = FakeExecutor()
        prompt = _Prompt()
        session = Session(fake, prompt=prompt, os_name="linux", root=False)
        session.execute("apt-get install -y git")
        assert fake.commands == [
            "sudo -n true",
            "sudo -n sh -c apt-get install -y git",
        ]
        assert prompt.calls == []

    def test_password_piped_on_stdin(self):
        fake = FakeExecutor()
        fake.set_failure("sudo -n true", error="a password is required")
        prompt = _Prompt("s3cret")
        session = Session(fake, prompt=prompt, os_name="linux", root=False)

        session.execute("apt-get install -y git")
        argv, stdin = fake.call_log[-1]
        assert argv == ["sudo", "-S", "-k", "-p", "", "sh", "-c", "apt-get install -y git"]
        assert stdin == "s3cret\n"

    def test_password_prompted_once_per_run(self):
        fake = FakeExecutor()
        fake.set_failure("sudo -n true", error="a password is required")
        prompt = _Prompt()
        session = Session(fake, prompt=prompt, os_name="linux", root=False)

        session.execute("apt-get install -y git")
        session.execute("apt-get install -y curl")
        assert prompt.calls == [SUDO_KEY]

    def test_wrong_password_is_not_retried(self):
        fake = FakeExecutor()
        fake.set_failure("sudo -n true", error="a password is required")
        fake.set_failure("sudo -S", error="Sorry, try again.\nsudo: 3 incorrect password attempts")
        prompt = _Prompt()
        session = Session(fake, prompt=prompt, os_name="linux", root=False)

        with pytest.raises(CommandError, match="Wrong sudo password"):
            session.execute("apt-get install -y git")
        with pytest.raises(CommandError, match="rejected"):
            session.execute("apt-get install -y curl")
        assert prompt.calls == [SUDO_KEY]

    def test_no_prompt_available(self):
        fake = FakeExecutor()
        fake.set_failure("sudo -n true", error="a password is required")
        session = Session(fake, os_name="linux", root=False)
        with pytest.raises(CommandError, match="prompting is disabled"):
            session.execute("apt-get install -y git")

    def test_leading_sudo_is_stripped(self):
        fake = FakeExecutor()
        session = Session(fake, os_name="linux", root=False)
        session.execute("sudo systemctl restart ssh")
        assert fake.commands[-1] == "sudo -n sh -c systemctl restart ssh"

    def test_root_runs_plain(self):
        fake = FakeExecutor()
        session = Session(fake, os_name="linux", root=True)
        session.execute("apt-get install -y git", needs_sudo=True)
        assert fake.commands == ["sh -c apt-get install -y git"]

    def test_handler_override_disables_elevation(self):
        fake = FakeExecutor()
        session = Session(fake, os_name="linux", root=False)
        session.execute("apt-get install -y git", needs_sudo=False)
        assert fake.commands == ["sh -c apt-get install -y git"]


class TestSecrets:
    def test_get_secret_caches(self):
        prompt = _Prompt("pw")
        session = Session(FakeExecutor(), prompt=prompt, os_name="linux", root=True)
        assert session.get_secret("decrypt:default") == "pw"
        assert session.get_secret("decrypt:default") == "pw"
        assert prompt.calls == ["decrypt:default"]

    def test_set_secret_skips_prompt(self):
        prompt = _Prompt()
        session = Session(FakeExecutor(), prompt=prompt, os_name="linux", root=True)
        session.set_secret("decrypt:work", "given")
        assert session.get_secret("decrypt:work") == "given"
        assert prompt.calls == []

    def test_clear_forgets_secrets(self):
        prompt = _Prompt()
        session = Session(FakeExecutor(), prompt=prompt, os_name="linux", root=True)
        session.get_secret("k")
        session.clear()
        session.get_secret("k")
        assert prompt.calls == ["k", "k"]


class TestPrerequisites:
    def test_installs_once(self):
        session = Session(FakeExecutor(), os_name="linux", root=True)
        installs = []
        assert session.ensure_prerequisite("asdf", lambda: False, lambda: installs.append(1))
        assert not session.ensure_prerequisite("asdf", lambda: False, lambda: installs.append(1))
        assert installs == [1]

    def test_skips_when_present(self):
        session = Session(FakeExecutor(), os_name="linux", root=True)
        installs = []
        assert not session.ensure_prerequisite("brew", lambda: True, lambda: installs.append(1))
        assert installs == []

    def test_concurrent_callers_install_once(self):
        session = Session(FakeExecutor(), os_name="linux", root=True)
        installed = threading.Event()
        installs = []

        def install():
            time.sleep(0.05)
            installs.append(1)
            installed.set()

        threads = [
            threading.Thread(
                target=session.ensure_prerequisite,
                args=("ollama", installed.is_set, install),
            )
            for _ in range(4)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert installs == [1]
