"""
Logging configuration — one call from the CLI, inherited everywhere.

Every module does ``logger = logging.getLogger(__name__)`` and never
configures handlers itself.

Level precedence:
    --debug / --verbose / --quiet  >  BLUEPRINT_LOG_LEVEL  >  WARNING

An optional log file (BLUEPRINT_LOG_FILE) always gets the full format
and may run at its own level (BLUEPRINT_LOG_FILE_LEVEL).

Secrets handed out by the session (sudo and decrypt passwords) are
registered here and masked in every record before it is emitted, on the
console and in the file alike.
"""

from __future__ import annotations

import logging
import sys

# ── Formats per level ───────────────────────────────────────────

_FORMATS: dict[int, tuple[str, str | None]] = {
    logging.DEBUG: ("%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s", "%H:%M:%S"),
    logging.INFO: ("%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
    logging.WARNING: ("%(message)s", None),
}

_FILE_FORMAT = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"

MASK = "********"

_secrets: set[str] = set()


def register_secret(value: str) -> None:
    """Mask ``value`` in all log output from now on."""
    if value:
        _secrets.add(value)


def forget_secrets() -> None:
    _secrets.clear()


class RedactSecrets(logging.Filter):
    """Replace registered secrets in the rendered message."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not _secrets:
            return True
        message = record.getMessage()
        redacted = message
        for secret in _secrets:
            redacted = redacted.replace(secret, MASK)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def resolve_level(verbose: bool = False, quiet: bool = False, debug: bool = False,
                  env_level: str | None = None) -> str:
    """Pick the console level from CLI flags, falling back to the env var."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return env_level or "WARNING"


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Configure the root logger for the whole process.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional path of a log file.
        log_file_level: Level for the file; defaults to ``level``.
    """
    console_level = _parse_level(level)
    redact = RedactSecrets()

    fmt, datefmt = _console_format(console_level)
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    console.addFilter(redact)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root_level = console_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        root_level = min(root_level, file_level)

        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
        fh.addFilter(redact)
        root.addHandler(fh)

    root.setLevel(root_level)
    logging.raiseExceptions = False


def _console_format(level: int) -> tuple[str, str | None]:
    for threshold in (logging.DEBUG, logging.INFO):
        if level <= threshold:
            return _FORMATS[threshold]
    return _FORMATS[logging.WARNING]


def _parse_level(level: str | None) -> int:
    """Level name to its numeric value; unknown names mean WARNING."""
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.WARNING
    return numeric
