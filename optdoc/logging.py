"""Logger hierarchy shared by the collector, the session and the CLI."""

from __future__ import annotations

import logging
from pathlib import Path

ROOT_LOGGER = "optdoc"
CONSOLE_FORMAT = "[optdoc] %(levelname)s %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return ``optdoc.<name>``, or the ``optdoc`` logger itself."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}" if name else ROOT_LOGGER)


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Send optdoc records to stderr and, when ``log_file`` is given, to that file.

    The file sink always records DEBUG so a failed build can be inspected
    without rerunning it under ``--verbose``.
    """
    console_level = logging.DEBUG if verbose else logging.INFO
    logger = get_logger()
    logger.propagate = False

    # Calling this twice in one process (tests, repeated main()) must not stack handlers.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(console)

    logger_level = console_level
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        sink = logging.FileHandler(log_file, encoding="utf-8")
        sink.setLevel(logging.DEBUG)
        sink.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(sink)
        logger_level = logging.DEBUG

    logger.setLevel(logger_level)
    return logger


__all__ = ["configure_logging", "get_logger"]
