"""
Error taxonomy for the provisioning engine.

Two families matter to the engine:

    - Parse / resolve errors (ParseError, DependencyError subclasses)
      are fatal and raised before any side effect.
    - Handler errors (HandlerError and subclasses) are recorded against
      the failing rule; the run continues and dependents are skipped.
"""

from __future__ import annotations


class BlueprintError(Exception):
    """Base class for all blueprint errors."""


# ── Parse / resolve ─────────────────────────────────────────────


class ParseError(BlueprintError):
    """A directive in a blueprint file could not be parsed."""

    def __init__(self, message: str, source: str = "", line: int = 0):
        self.source = source
        self.line = line
        location = f"{source}:{line}: " if source and line else ""
        super().__init__(f"{location}{message}")


class DependencyError(BlueprintError):
    """Base class for dependency resolution failures."""


class UnknownDependencyError(DependencyError):
    def __init__(self, ref: str, rule: str = ""):
        self.ref = ref
        self.rule = rule
        owner = f"Rule '{rule}' depends on" if rule else "Dependency"
        super().__init__(f"{owner} unknown rule '{ref}'")


class AmbiguousDependencyError(DependencyError):
    def __init__(self, ref: str, candidates: list[str]):
        self.ref = ref
        self.candidates = candidates
        super().__init__(
            f"Dependency '{ref}' matches {len(candidates)} rules: {', '.join(candidates)}"
        )


class DuplicateIdError(DependencyError):
    def __init__(self, rule_id: str):
        self.rule_id = rule_id
        super().__init__(f"Duplicate rule id: {rule_id}")


class DependencyCycleError(DependencyError):
    def __init__(self, members: list[str]):
        self.members = members
        super().__init__(f"Dependency cycle between: {', '.join(members)}")


# ── Execution ───────────────────────────────────────────────────


class HandlerError(BlueprintError):
    """A rule's forward or reverse action failed."""


class ValidationError(HandlerError):
    """A rule parameter failed validation before reaching the shell."""


class CommandError(HandlerError):
    """A shell command exited non-zero or could not be started."""

    def __init__(self, message: str, command: str = "", output: str = ""):
        self.command = command
        self.output = output
        super().__init__(message)


# ── Collaborators ───────────────────────────────────────────────


class GitError(BlueprintError):
    """A git clone or update failed."""


class CryptoError(BlueprintError):
    """Encryption or decryption failed (bad password, corrupt envelope)."""
