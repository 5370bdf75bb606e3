"""Logging setup for lsprelay.

Everything logs under the ``lsprelay`` logger; backend stderr goes to
``lsprelay.backend``. Output goes to a log file when one is configured,
otherwise to stderr. Nothing here writes to stdout, which carries protocol
bytes in client mode.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from lsprelay.config.schema import LoggingConfig

TRACE = 5
VERBOSE = 15

logging.addLevelName(TRACE, "TRACE")
logging.addLevelName(VERBOSE, "VERBOSE")

logger = logging.getLogger("lsprelay")

_initialized = False

_LEVEL_MAP = {
    "TRACE": TRACE,
    "DEBUG": logging.DEBUG,
    "VERBOSE": VERBOSE,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# -v count; anything above 4 is TRACE
_VERBOSITY_MAP = {
    0: logging.ERROR,
    1: logging.WARNING,
    2: logging.INFO,
    3: VERBOSE,
    4: TRACE,
}


class _LowercaseLevelFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        record.levelname = record.levelname.lower()
        return super().format(record)


def resolve_level(config: LoggingConfig | None) -> int:
    """Log level for a config: verbose (int) takes precedence over level (str)."""
    if config is None:
        return logging.INFO
    if config.verbose is not None:
        return _VERBOSITY_MAP.get(config.verbose, TRACE)
    if config.level:
        return _LEVEL_MAP.get(config.level.upper(), logging.INFO)
    return logging.INFO


def setup_logging(config: LoggingConfig | None = None, *, console: bool = False) -> None:
    """Attach handlers to the ``lsprelay`` logger. Only the first call has an effect.

    Args:
        config: Level, verbosity and log file. ``LSPRELAY_LOG`` is used when
            no file is configured.
        console: Log to stderr even when it is not a terminal. The server
            sets this; the client does not, since its stderr usually
            belongs to an editor.
    """
    global _initialized
    if _initialized:
        return
    _initialized = True

    level = resolve_level(config)
    logger.setLevel(level)
    formatter = _LowercaseLevelFormatter(
        "%(asctime)s %(levelname)s %(name)s: %(message)s", datefmt="%H:%M:%S"
    )

    log_path = config.file if config and config.file else os.environ.get("LSPRELAY_LOG")
    handler: logging.Handler
    if log_path:
        log_path = os.path.expanduser(log_path)
        try:
            handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        except OSError as e:
            handler = logging.StreamHandler(sys.stderr)
            _attach(handler, formatter, level)
            logger.warning("Cannot open log file %s (%s), logging to stderr", log_path, e)
            return
    elif console or sys.stderr.isatty():
        handler = logging.StreamHandler(sys.stderr)
    else:
        handler = logging.NullHandler()

    _attach(handler, formatter, level)


def _attach(handler: logging.Handler, formatter: logging.Formatter, level: int) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def get_logger(name: str | None = None) -> logging.Logger:
    """Return ``lsprelay`` or its child ``lsprelay.<name>``."""
    if name:
        return logger.getChild(name)
    return logger
