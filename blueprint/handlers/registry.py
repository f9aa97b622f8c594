"""
Handler registry — maps rule kinds to handler classes.

The set of kinds is closed: importing this module fails if any kind in
``CONCRETE_KINDS`` has no handler.
"""

from __future__ import annotations

from blueprint.core.models.rule import CONCRETE_KINDS, Rule
from blueprint.handlers.asdf import AsdfHandler
from blueprint.handlers.base import Handler, HandlerContext
from blueprint.handlers.clone import CloneHandler
from blueprint.handlers.decrypt import DecryptHandler
from blueprint.handlers.gpg_key import GPGKeyHandler
from blueprint.handlers.homebrew import HomebrewHandler
from blueprint.handlers.install import InstallHandler
from blueprint.handlers.known_hosts import KnownHostsHandler
from blueprint.handlers.mkdir import MkdirHandler
from blueprint.handlers.ollama import OllamaHandler

HANDLERS: dict[str, type[Handler]] = {
    cls.kind: cls
    for cls in (
        InstallHandler,
        CloneHandler,
        DecryptHandler,
        MkdirHandler,
        AsdfHandler,
        KnownHostsHandler,
        GPGKeyHandler,
        HomebrewHandler,
        OllamaHandler,
    )
}

_missing = set(CONCRETE_KINDS) - set(HANDLERS)
if _missing:
    raise RuntimeError(f"No handler registered for: {', '.join(sorted(_missing))}")


def handler_classes() -> list[type[Handler]]:
    """Handler classes in kind priority order."""
    return [HANDLERS[kind] for kind in CONCRETE_KINDS]


def new_handler(rule: Rule, context: HandlerContext) -> Handler:
    """Instantiate the handler for ``rule``.

    Uninstall rules dispatch to the handler of their recovered kind
    with ``is_uninstall`` set.
    """
    cls = HANDLERS[rule.concrete_kind()]
    return cls(rule, context, is_uninstall=rule.is_uninstall)
