"""
Logging configuration for obsidian-tools.

Quiet by default; --verbose (or OBSIDIAN_TOOLS_VERBOSE=1) turns on debug
output to stderr.
"""

import logging
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOGGER_NAME = "obsidian_tools"


def configure_quiet_mode(quiet: bool = True):
    """
    Keep the terminal clean for command output.

    Args:
        quiet: If True, silence Python warnings and chatty library loggers.
    """
    if quiet:
        warnings.filterwarnings("ignore")
        logging.getLogger("yaml").setLevel(logging.ERROR)
        logging.getLogger(LOGGER_NAME).setLevel(logging.WARNING)


def enable_debug_mode():
    """Enable debug-level logging to stderr."""
    warnings.filterwarnings("default")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    if not any(isinstance(h, logging.StreamHandler) and h.stream == sys.stderr
               for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S"
        ))
        root_logger.addHandler(handler)

    logging.getLogger(LOGGER_NAME).setLevel(logging.DEBUG)


def configure_ops_log(log_dir: Path) -> logging.Handler:
    """Attach a persistent operations log.

    Writes to {log_dir}/ops.log using a rotating file handler
    (1MB max, 3 backups). Returns the handler so it can be removed
    with remove_ops_log() when the collection is closed.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        str(log_dir / "ops.log"),
        maxBytes=1_000_000,
        backupCount=3,
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    logger = logging.getLogger(LOGGER_NAME)
    logger.addHandler(handler)
    # Let INFO through to the file even in quiet mode
    if logger.level == logging.NOTSET or logger.level > logging.INFO:
        logger.setLevel(logging.INFO)
    return handler


def remove_ops_log(handler: logging.Handler) -> None:
    """Detach and close a handler returned by configure_ops_log()."""
    logging.getLogger(LOGGER_NAME).removeHandler(handler)
    handler.close()
