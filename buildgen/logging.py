"""Logging for buildgen runs.

Per-directory and per-import problems are reported through loggers under
the ``buildgen`` hierarchy (``buildgen.walker``, ``buildgen.resolve`` and so
on). Console output goes to stderr so it never mixes with build files
written to stdout by the ``print`` and ``diff`` modes.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

_LOGGER_NAME = "buildgen"
_CONSOLE_FORMAT = "[buildgen] %(levelname)s %(message)s"
# Verbose output names the component that reported the record.
_VERBOSE_FORMAT = "[buildgen] %(levelname)s %(component)s: %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return the logger for one component, e.g. ``get_logger("merger")``."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


class _ComponentFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name.startswith(_LOGGER_NAME + "."):
            name = name[len(_LOGGER_NAME) + 1 :]
        record.component = name
        return True


def configure_logging(
    *, verbose: bool = False, quiet: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Install the console handler and an optional file sink.

    ``verbose`` enables debug records (skipped directories, unchanged
    files); ``quiet`` keeps only warnings and errors. The file sink always
    records at debug level so a run can be inspected after the fact.
    """
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(logging.DEBUG if log_file is not None else level)
    logger.propagate = False

    # Reset handlers so repeated in-process runs do not duplicate output.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setLevel(level)
    stream_handler.addFilter(_ComponentFilter())
    stream_handler.setFormatter(logging.Formatter(_VERBOSE_FORMAT if verbose else _CONSOLE_FORMAT))
    logger.addHandler(stream_handler)

    if log_file is not None:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.addHandler(file_handler)

    return logger


__all__ = ["configure_logging", "get_logger"]
