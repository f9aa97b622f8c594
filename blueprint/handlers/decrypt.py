"""
Decrypt handler — materializes an encrypted file at a target path.

The encrypted source is looked up as given, then relative to the
blueprint's directory, the working directory and the home directory.
Output is written with mode 0600 into a directory created with 0700.
Passwords come from the session, keyed by the rule's password id.
"""

from __future__ import annotations

import logging
import os
import shlex
from pathlib import Path

from blueprint.core.errors import CryptoError, HandlerError
from blueprint.core.models.rule import Rule
from blueprint.core.models.status import DecryptStatus, StatusRecord, normalize_path
from blueprint.core.services.crypto import decrypt_bytes
from blueprint.handlers.base import Handler

logger = logging.getLogger(__name__)

DEFAULT_PASSWORD_ID = "default"


def secret_key(password_id: str) -> str:
    """Session cache key for a decrypt password."""
    return f"decrypt:{password_id or DEFAULT_PASSWORD_ID}"


class DecryptHandler(Handler):
    kind = "decrypt"
    status_type = DecryptStatus

    @property
    def password_id(self) -> str:
        return self.rule.password_id or DEFAULT_PASSWORD_ID

    def up(self) -> str:
        source = self._source()
        if not source.is_file():
            raise HandlerError(f"Encrypted file not found: {self.rule.decrypt_file}")

        session = self.context.session
        key = secret_key(self.password_id)
        password = session.get_secret(key, f"Password for '{self.password_id}'")

        try:
            ciphertext = source.read_bytes()
        except OSError as e:
            raise HandlerError(f"Cannot read {source}: {e}") from e

        try:
            plaintext = decrypt_bytes(ciphertext, password)
        except CryptoError as e:
            session.reject_secret(key)
            raise HandlerError(f"Cannot decrypt {source}: {e}") from e

        dest = self._dest()
        if _has_content(dest, plaintext):
            return f"{dest} already up to date"

        try:
            dest.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
            fd = os.open(dest, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "wb") as f:
                f.write(plaintext)
            os.chmod(dest, 0o600)
        except OSError as e:
            raise HandlerError(f"Cannot write {dest}: {e}") from e

        return f"Decrypted {source.name} → {dest}"

    def down(self) -> str:
        dest = self._dest()
        if not dest.exists():
            return f"{dest} does not exist"
        try:
            dest.unlink()
        except OSError as e:
            raise HandlerError(f"Cannot remove {dest}: {e}") from e
        return f"Removed {dest}"

    def get_command(self) -> str:
        dest = shlex.quote(str(self._dest()))
        if self.is_uninstall:
            return f"rm -f {dest}"
        return f"decrypt {shlex.quote(str(self._source()))} -> {dest}"

    def display_info(self) -> list[str]:
        return [
            f"File: {self.rule.decrypt_file}",
            f"Path: {self.rule.decrypt_path}",
            f"Password ID: {self.password_id}",
        ]

    def needs_sudo(self) -> bool | None:
        return False

    def status_entries(self, blueprint: str, os_name: str) -> list[StatusRecord]:
        return [
            DecryptStatus(
                source_file=self.rule.decrypt_file,
                dest_path=self.rule.decrypt_path,
                password_id=self.rule.password_id,
                blueprint=blueprint,
                os=os_name,
            )
        ]

    @classmethod
    def declared_keys(cls, rule: Rule, os_name: str) -> set[str]:
        return {normalize_path(rule.decrypt_path)}

    @classmethod
    def uninstall_rule(cls, record: StatusRecord) -> Rule:
        return Rule(
            kind="uninstall",
            decrypt_file=record.source_file,
            decrypt_path=record.dest_path,
            password_id=record.password_id,
            os_list=(record.os,),
        )

    def _dest(self) -> Path:
        return Path(self.rule.decrypt_path).expanduser()

    def _source(self) -> Path:
        given = Path(self.rule.decrypt_file).expanduser()
        if given.is_absolute():
            return given
        candidates = [self.context.base_path / given, Path.cwd() / given, Path.home() / given]
        for candidate in candidates:
            if candidate.is_file():
                return candidate
        return candidates[0]


def _has_content(path: Path, content: bytes) -> bool:
    try:
        return path.is_file() and path.read_bytes() == content
    except OSError:
        return False
