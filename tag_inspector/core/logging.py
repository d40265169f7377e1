"""
Logging Configuration Module
============================

Centralized logging configuration for the tag inspector.

This module sets up:
- Console output through Rich (stderr, so JSON reports on stdout stay clean)
- Optional file logging with thread names, since scans run on worker pools
- Structured ``extra={...}`` fields appended to file records
- Quieter third-party loggers (boto3, botocore, urllib3)

Functions
---------
setup_logging
    Configure application-wide logging.
get_logger
    Get a logger for a specific module.

Example
-------
>>> from tag_inspector.core.logging import setup_logging, get_logger
>>>
>>> setup_logging(level="INFO", log_file="tag-inspector.log")
>>> logger = get_logger(__name__)
>>> logger.info("Starting scan", extra={"policy_version": "1.0"})

See Also
--------
logging : Python standard library logging module.
rich.logging : Rich library's logging handler.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Union

from rich.console import Console
from rich.logging import RichHandler

DEFAULT_FORMAT = "%(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

NOISY_LOGGERS = ("boto3", "botocore", "urllib3", "s3transfer")

# Attributes every LogRecord has; anything else came in through ``extra``.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime", "taskName"}


def resolve_level(level: Union[str, int]) -> int:
    """
    Convert a level name or number to a logging level.

    Raises
    ------
    ValueError
        If the name is not a known level.
    """
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")
    return resolved


class ExtraFieldsFormatter(logging.Formatter):
    """File formatter that appends ``extra`` fields as ``key=value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        extras = {
            key: value
            for key, value in vars(record).items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        }
        if not extras:
            return message
        fields = " ".join(f"{key}={value!r}" for key, value in sorted(extras.items()))
        return f"{message} | {fields}"


def setup_logging(
    level: Union[str, int] = "INFO",
    log_file: Optional[str] = None,
    rich_tracebacks: bool = True,
    console: Optional[Console] = None,
    noisy_loggers: Iterable[str] = NOISY_LOGGERS,
) -> None:
    """
    Configure application-wide logging.

    Parameters
    ----------
    level : str or int, default="INFO"
        Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    log_file : str, optional
        Path to log file. If provided, logs will be written to this file.
    rich_tracebacks : bool, default=True
        Whether to use Rich for exception tracebacks.
    console : Console, optional
        Rich Console instance. Defaults to a stderr console.
    noisy_loggers : iterable of str
        Third-party loggers capped at WARNING.

    Examples
    --------
    >>> setup_logging(level="DEBUG", log_file="tag-inspector.log")

    Notes
    -----
    Replaces any handlers already on the root logger, so calling it twice
    does not duplicate output.
    """
    level = resolve_level(level)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = RichHandler(
        console=console or Console(stderr=True),
        show_time=True,
        show_path=False,
        rich_tracebacks=rich_tracebacks,
        tracebacks_show_locals=False,
        markup=False,
    )
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(ExtraFieldsFormatter(FILE_FORMAT, datefmt=DATE_FORMAT))
        root_logger.addHandler(file_handler)

    for name in noisy_loggers:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    root_logger.debug(
        f"Logging configured: level={logging.getLevelName(level)}, "
        f"file={log_file or 'None'}"
    )


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a specific module (typically ``__name__``)."""
    return logging.getLogger(name)


class LogContext:
    """
    Context manager for temporary log level changes.

    Example
    -------
    >>> with LogContext(get_logger("botocore"), "DEBUG"):
    ...     client.validate_credentials()
    """

    def __init__(
        self,
        logger: logging.Logger,
        level: Union[str, int],
    ) -> None:
        self.logger = logger
        self.new_level = resolve_level(level)
        self.original_level: Optional[int] = None

    def __enter__(self) -> logging.Logger:
        self.original_level = self.logger.level
        self.logger.setLevel(self.new_level)
        return self.logger

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.original_level is not None:
            self.logger.setLevel(self.original_level)
