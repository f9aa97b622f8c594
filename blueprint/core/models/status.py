"""
Status — the persisted record of what blueprint has applied.

One list per resource kind. Every record carries its natural key plus
two provenance fields, ``blueprint`` (normalized source-file path) and
``os``. The triple (key, blueprint, os) is the record's identity:
``Status.upsert`` replaces a record with the same identity instead of
appending a duplicate.

Serialized to ``~/.blueprint/status.json`` by
``blueprint.core.persistence.status_file``.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime
from pathlib import Path
from typing import ClassVar

from pydantic import BaseModel, Field

from blueprint.core.models.rule import Package

# Start of a remote blueprint reference: scheme:// or scp-style user@host:
REMOTE_PREFIX = r"(?:[a-z][a-z0-9+.\-]*://|[\w.\-]+@[\w.\-]+:)"
_REMOTE_REF = re.compile(rf"^{REMOTE_PREFIX}")


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


def normalize_path(path: str | Path) -> str:
    """Absolute, user-expanded, symlink-resolved form of ``path``."""
    return str(Path(path).expanduser().resolve(strict=False))


def normalize_blueprint(blueprint: str | Path) -> str:
    """Provenance form of a blueprint: remote references are kept verbatim."""
    value = str(blueprint)
    if _REMOTE_REF.match(value):
        return value
    return normalize_path(value)


# ── Records ─────────────────────────────────────────────────────


class StatusRecord(BaseModel):
    """Common provenance for every status entry."""

    list_name: ClassVar[str] = ""

    blueprint: str
    os: str
    timestamp: str = Field(default_factory=_now_iso)

    def key(self) -> str:
        raise NotImplementedError

    def matches(self, key: str, blueprint: str, os_name: str) -> bool:
        return (
            self.key() == key
            and self.os == os_name
            and normalize_blueprint(self.blueprint) == normalize_blueprint(blueprint)
        )

    def same_content(self, other: StatusRecord) -> bool:
        """Equal apart from the timestamp."""
        return type(self) is type(other) and self.model_dump(
            exclude={"timestamp"}
        ) == other.model_dump(exclude={"timestamp"})


class PackageStatus(StatusRecord):
    list_name: ClassVar[str] = "packages"

    name: str
    package_manager: str = ""

    def key(self) -> str:
        return Package(name=self.name, package_manager=self.package_manager).key(self.os)


class CloneStatus(StatusRecord):
    list_name: ClassVar[str] = "clones"

    url: str
    path: str
    branch: str = ""
    sha: str = ""

    def key(self) -> str:
        return normalize_path(self.path)


class DecryptStatus(StatusRecord):
    list_name: ClassVar[str] = "decrypts"

    source_file: str
    dest_path: str
    password_id: str = ""

    def key(self) -> str:
        return normalize_path(self.dest_path)


class MkdirStatus(StatusRecord):
    list_name: ClassVar[str] = "mkdirs"

    path: str
    perms: str = ""

    def key(self) -> str:
        return normalize_path(self.path)


class KnownHostsStatus(StatusRecord):
    list_name: ClassVar[str] = "known_hosts"

    host: str
    key_type: str = ""

    def key(self) -> str:
        return self.host


class GPGKeyStatus(StatusRecord):
    list_name: ClassVar[str] = "gpg_keys"

    keyring: str
    url: str = ""
    deb_url: str = ""

    def key(self) -> str:
        return self.keyring


class AsdfStatus(StatusRecord):
    """Several versions of one plugin coexist, so the version is part of the key."""

    list_name: ClassVar[str] = "asdfs"

    plugin: str
    version: str

    def key(self) -> str:
        return f"{self.plugin}@{self.version}"


class HomebrewStatus(StatusRecord):
    list_name: ClassVar[str] = "brews"

    formula: str
    version: str = ""

    def key(self) -> str:
        return self.formula


class OllamaStatus(StatusRecord):
    list_name: ClassVar[str] = "ollamas"

    model: str

    def key(self) -> str:
        return self.model


# ── Aggregate ───────────────────────────────────────────────────


class Status(BaseModel):
    """All applied resources, across every blueprint file and OS."""

    packages: list[PackageStatus] = Field(default_factory=list)
    clones: list[CloneStatus] = Field(default_factory=list)
    decrypts: list[DecryptStatus] = Field(default_factory=list)
    mkdirs: list[MkdirStatus] = Field(default_factory=list)
    known_hosts: list[KnownHostsStatus] = Field(default_factory=list)
    gpg_keys: list[GPGKeyStatus] = Field(default_factory=list)
    asdfs: list[AsdfStatus] = Field(default_factory=list)
    brews: list[HomebrewStatus] = Field(default_factory=list)
    ollamas: list[OllamaStatus] = Field(default_factory=list)

    def records(self, list_name: str) -> list[StatusRecord]:
        return getattr(self, list_name)

    def scoped(self, list_name: str, blueprint: str, os_name: str) -> list[StatusRecord]:
        """Records of one kind that belong to (blueprint, os)."""
        target = normalize_blueprint(blueprint)
        return [
            r
            for r in self.records(list_name)
            if r.os == os_name and normalize_blueprint(r.blueprint) == target
        ]

    def find(
        self, list_name: str, key: str, blueprint: str, os_name: str
    ) -> StatusRecord | None:
        for record in self.records(list_name):
            if record.matches(key, blueprint, os_name):
                return record
        return None

    def upsert(self, record: StatusRecord) -> None:
        """Insert ``record``, replacing any entry with the same identity.

        An existing entry that differs only by timestamp is left as is,
        so re-applying an unchanged blueprint leaves Status unchanged.
        """
        items = self.records(record.list_name)
        for i, existing in enumerate(items):
            if existing.matches(record.key(), record.blueprint, record.os):
                if not existing.same_content(record):
                    items[i] = record
                return
        items.append(record)

    def remove(self, list_name: str, key: str, blueprint: str, os_name: str) -> bool:
        """Remove the entry with this identity. Returns True if one was removed."""
        items = self.records(list_name)
        for i, existing in enumerate(items):
            if existing.matches(key, blueprint, os_name):
                del items[i]
                return True
        return False

    @property
    def total(self) -> int:
        return sum(len(self.records(name)) for name in type(self).model_fields)
