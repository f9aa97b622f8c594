"""
Rule model — one parsed blueprint directive.

Rules are immutable once parsed. The parameter bag is flat: each kind
populates its own fields and leaves the rest empty. For the
``uninstall`` pseudo-kind the concrete kind is recovered from which
fields are populated (see ``Rule.concrete_kind``).
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict

from blueprint.core.errors import ParseError

RuleKind = Literal[
    "install",
    "clone",
    "decrypt",
    "mkdir",
    "asdf",
    "known_hosts",
    "gpg-key",
    "homebrew",
    "ollama",
    "uninstall",
]

# Priority order used to recover the kind of an uninstall rule.
CONCRETE_KINDS: tuple[str, ...] = (
    "install",
    "clone",
    "decrypt",
    "mkdir",
    "asdf",
    "known_hosts",
    "gpg-key",
    "homebrew",
    "ollama",
)


_MANAGER_ALIASES = {"apt": "apt-get", "homebrew": "brew"}


def default_package_manager(os_name: str) -> str:
    return "brew" if os_name == "mac" else "apt-get"


class Package(BaseModel):
    """A package name, optionally pinned to a package manager (``snap:code``)."""

    model_config = ConfigDict(frozen=True)

    name: str
    package_manager: str = ""

    def __str__(self) -> str:
        if self.package_manager:
            return f"{self.package_manager}:{self.name}"
        return self.name

    def manager_for(self, os_name: str) -> str:
        """The manager that installs this package on ``os_name``."""
        manager = self.package_manager or default_package_manager(os_name)
        return _MANAGER_ALIASES.get(manager, manager)

    def key(self, os_name: str) -> str:
        """Natural key: the bare name under the OS default manager, else ``manager:name``."""
        manager = self.manager_for(os_name)
        if manager == default_package_manager(os_name):
            return self.name
        return f"{manager}:{self.name}"


class Rule(BaseModel):
    """A declared resource."""

    model_config = ConfigDict(frozen=True)

    kind: RuleKind
    id: str = ""
    after: tuple[str, ...] = ()
    os_list: tuple[str, ...] = ()
    group: str = ""

    # install
    packages: tuple[Package, ...] = ()

    # clone
    clone_url: str = ""
    clone_path: str = ""
    branch: str = ""

    # decrypt
    decrypt_file: str = ""
    decrypt_path: str = ""
    password_id: str = ""

    # mkdir
    mkdir: str = ""
    mkdir_perms: str = ""

    # asdf (plugin@version)
    asdf_packages: tuple[str, ...] = ()

    # known_hosts
    known_hosts: str = ""
    known_hosts_key: str = ""

    # gpg-key
    gpg_keyring: str = ""
    gpg_key_url: str = ""
    gpg_deb_url: str = ""

    # homebrew / ollama
    homebrew_packages: tuple[str, ...] = ()
    ollama_models: tuple[str, ...] = ()

    @property
    def is_uninstall(self) -> bool:
        return self.kind == "uninstall"

    def concrete_kind(self) -> str:
        """The handler kind for this rule, recovering it for uninstall rules."""
        if not self.is_uninstall:
            return self.kind
        if self.packages:
            return "install"
        if self.clone_url or self.clone_path:
            return "clone"
        if self.decrypt_file or self.decrypt_path:
            return "decrypt"
        if self.mkdir:
            return "mkdir"
        if self.asdf_packages:
            return "asdf"
        if self.known_hosts:
            return "known_hosts"
        if self.gpg_keyring:
            return "gpg-key"
        if self.homebrew_packages:
            return "homebrew"
        if self.ollama_models:
            return "ollama"
        raise ParseError("Cannot determine what an uninstall rule removes: no parameters set")

    @property
    def dependency_key(self) -> str:
        """Identity used to order and reference this rule in ``after:`` clauses."""
        if self.id:
            return self.id
        kind = self.concrete_kind()
        fallback = _fallback_key(self, kind)
        if self.is_uninstall:
            return f"uninstall-{fallback}"
        return fallback

    def applies_to(self, os_name: str) -> bool:
        """Rules with an empty ``os_list`` apply everywhere."""
        return not self.os_list or os_name in self.os_list

    def package_names(self) -> list[str]:
        return [p.name for p in self.packages]


def _fallback_key(rule: Rule, kind: str) -> str:
    if kind == "install" and rule.packages:
        return rule.packages[0].name
    if kind == "clone" and rule.clone_path:
        return rule.clone_path
    if kind == "decrypt" and rule.decrypt_path:
        return rule.decrypt_path
    if kind == "mkdir" and rule.mkdir:
        return rule.mkdir
    if kind == "known_hosts" and rule.known_hosts:
        return rule.known_hosts
    if kind == "gpg-key" and rule.gpg_keyring:
        return rule.gpg_keyring
    if kind == "homebrew" and rule.homebrew_packages:
        return rule.homebrew_packages[0]
    if kind == "ollama" and rule.ollama_models:
        return rule.ollama_models[0]
    return kind
