"""
Token validation — the single gate in front of shell interpolation.

Every user-supplied identifier that ends up inside a rendered command
(package, plugin, version, host, keyring, formula, model, branch)
passes ``validate_token`` first. Paths and URLs are shell-quoted with
``shlex.quote`` instead, since they legitimately contain anything.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from blueprint.core.errors import ValidationError

# Leading character may not be '-' (option injection).
_SAFE_TOKEN = re.compile(r"^[A-Za-z0-9_.][A-Za-z0-9_.+@:/=~%\-]*$")

# Hostnames, keyrings, key types: no separators at all
_STRICT_TOKEN = re.compile(r"^[A-Za-z0-9_.][A-Za-z0-9_.\-]*$")

_PERMS = re.compile(r"^[0-7]{3,4}$")


def validate_token(value: str, what: str = "value", strict: bool = False) -> str:
    """Return ``value`` unchanged if it is safe to interpolate, else raise.

    Args:
        value: The user-supplied token.
        what: Name used in the error message.
        strict: Only letters, digits, ``.``, ``_`` and ``-``.

    Raises:
        ValidationError: The token contains a disallowed character.
    """
    pattern = _STRICT_TOKEN if strict else _SAFE_TOKEN
    if not value or not pattern.fullmatch(value):
        raise ValidationError(f"Invalid {what}: {value!r}")
    return value


def validate_tokens(values: Iterable[str], what: str = "value", strict: bool = False) -> list[str]:
    return [validate_token(v, what, strict) for v in values]


def validate_perms(value: str) -> str:
    """Validate an octal permission string such as ``755`` or ``0700``."""
    if not _PERMS.fullmatch(value):
        raise ValidationError(f"Invalid permissions {value!r}: expected octal like 755")
    return value
