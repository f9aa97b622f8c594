"""Handlers — one per resource kind.

Public re-exports for convenient access.
"""

from blueprint.handlers.base import Handler, HandlerContext
from blueprint.handlers.registry import HANDLERS, handler_classes, new_handler

__all__ = [
    "HANDLERS",
    "Handler",
    "HandlerContext",
    "handler_classes",
    "new_handler",
]
