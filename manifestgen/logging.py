"""Logging for manifestgen.

Every component logs through a child of the ``manifestgen`` logger
(``manifestgen.closure``, ``manifestgen.sources.golist``, ...), so one call
to :func:`configure_logging` from the CLI controls the whole build. Closure
builds with several workers run ``go list`` on pool threads; the file sink
records the thread name so interleaved fetches can be told apart.
"""

from __future__ import annotations

import logging
from pathlib import Path

_LOGGER_NAME = "manifestgen"
_STREAM_FORMAT = "[manifestgen] %(levelname)s %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(threadName)s %(name)s: %(message)s"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return ``manifestgen.<name>``, or the package logger when ``name`` is empty."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Send manifestgen logs to stderr and, optionally, to ``log_file``.

    ``verbose`` enables the per-package fetch and merge messages logged at
    DEBUG. Manifests go to stdout, so log output never mixes with them.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    # main() may run several times in one process (tests); keep one set of handlers.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(logging.Formatter(_STREAM_FORMAT))
    logger.addHandler(stream_handler)

    if log_file is not None:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.addHandler(file_handler)

    return logger


__all__ = ["configure_logging", "get_logger"]
