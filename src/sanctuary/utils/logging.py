"""Logging setup for the sanctuary services.

Everything logs under the ``sanctuary`` logger. HTTP client libraries
are held at WARNING unless debug logging is on, since every Browserless
call and media download would otherwise log a request line.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from sanctuary.config.settings import LoggingConfig

PACKAGE_LOGGER = "sanctuary"
CHATTY_LOGGERS = ("httpx", "httpcore")


def setup_logging(config: LoggingConfig | None = None) -> logging.Logger:
    """Install stderr (and optionally file) handlers on the package logger.

    Safe to call more than once: existing handlers are closed and replaced.
    The log file's parent directory is created if needed. Returns the
    configured package logger.
    """
    config = config or LoggingConfig()
    level = logging.getLevelName(config.level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(level)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(config.format)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.file:
        log_path = Path(config.file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(formatter)
        package_logger.addHandler(handler)

    for name in CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if level <= logging.DEBUG else logging.WARNING)

    package_logger.debug("Logging to %d handler(s) at %s", len(handlers), logging.getLevelName(level))
    return package_logger
