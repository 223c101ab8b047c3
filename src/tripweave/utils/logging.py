"""Logging setup for tripweave.

Library modules only ever call ``logging.getLogger(__name__)``; handlers are
attached once, by the command line entry point, through :func:`setup_logging`.
Console output goes to stderr so generated JSON on stdout stays clean.

Example:
    >>> from tripweave.utils.logging import setup_logging, LogContext
    >>> setup_logging(level="DEBUG")
    >>> with LogContext("Generating story"):
    ...     pass
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

PACKAGE_NAME = "tripweave"

# SDK, transport and imaging loggers that are chatty at INFO
THIRD_PARTY_LOGGERS = (
    "google",
    "google.auth",
    "google.api_core",
    "google.generativeai",
    "grpc",
    "urllib3",
    "requests",
    "PIL",
    "keyring",
)

LOG_FILE_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"
LOG_FILE_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

_stderr = Console(stderr=True)


def setup_logging(
    level: str = "INFO",
    log_file: Path | None = None,
    quiet_third_party: bool = True,
) -> logging.Logger:
    """Attach handlers to the ``tripweave`` logger and return it.

    Calling this again replaces the handlers from the previous call.

    Args:
        level: Level name; unknown names fall back to INFO.
        log_file: Also write plain-text records to this file.
        quiet_third_party: Cap SDK and HTTP loggers at WARNING.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    package_logger = logging.getLogger(PACKAGE_NAME)
    package_logger.setLevel(numeric_level)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    console = RichHandler(
        console=_stderr,
        level=numeric_level,
        show_time=False,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
        tracebacks_show_locals=numeric_level <= logging.DEBUG,
    )
    package_logger.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        to_file = logging.FileHandler(log_file, encoding="utf-8")
        to_file.setLevel(numeric_level)
        to_file.setFormatter(logging.Formatter(LOG_FILE_FORMAT, datefmt=LOG_FILE_DATE_FORMAT))
        package_logger.addHandler(to_file)

    if quiet_third_party:
        for name in THIRD_PARTY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    package_logger.propagate = False
    package_logger.debug("Logging ready (level=%s, file=%s)", logging.getLevelName(numeric_level), log_file)
    return package_logger


class LogContext:
    """Log how long a block of work took.

    The opening line and the "done" line use ``level``; a failure is always
    logged at ERROR and the exception is re-raised.

    Attributes:
        message: What is being done, e.g. ``"Building photo book 'Lisbon'"``.
        level: Level for the opening and closing lines.
        logger: Where to log; defaults to the package logger.
        elapsed: Seconds spent inside the block, set on exit.
    """

    def __init__(
        self,
        message: str,
        level: int = logging.INFO,
        logger: logging.Logger | None = None,
    ) -> None:
        self.message = message
        self.level = level
        self.logger = logger or logging.getLogger(PACKAGE_NAME)
        self.elapsed = 0.0
        self._started = 0.0

    def __enter__(self) -> "LogContext":
        self._started = time.perf_counter()
        self.logger.log(self.level, "%s...", self.message)
        return self

    def __exit__(self, exc_type: Any, exc_val: BaseException | None, exc_tb: Any) -> None:
        self.elapsed = time.perf_counter() - self._started
        if exc_val is not None:
            self.logger.error("%s failed after %.2fs: %s", self.message, self.elapsed, exc_val)
        else:
            self.logger.log(self.level, "%s done in %.2fs", self.message, self.elapsed)
