"""
Exceptions and error logging for the obsidian-tools CLI.

Logs full stack traces for debugging while showing clean messages to users.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


class FlagError(ValueError):
    """A command-line flag was given without a required value."""


class QueryFileError(ValueError):
    """A query definition file could not be parsed into a query."""


class QueryFileNotFound(QueryFileError):
    """The query definition file does not exist."""


class VaultError(Exception):
    """The local collection could not complete an operation."""


class ExpressionError(ValueError):
    """A where-clause or formula expression is malformed or unsupported."""


def state_dir() -> Path:
    """Directory for logs, respecting OBSIDIAN_TOOLS_HOME."""
    home = os.environ.get("OBSIDIAN_TOOLS_HOME")
    if home:
        return Path(home).expanduser()
    return Path.home() / ".obsidian-tools"


def _error_log_path() -> Path:
    return state_dir() / "errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # Can't write error log; the message still reaches the user
    return log_path
