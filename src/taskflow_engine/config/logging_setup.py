"""Logging configuration for processes that embed the workflow engine."""

from __future__ import annotations

import logging
import sys


def configure_logging(level: str | int = logging.INFO) -> None:
    """Attach one stderr handler to the package logger.

    Safe to call more than once; existing handlers installed by this function
    are replaced rather than duplicated.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    package_logger = logging.getLogger("taskflow_engine")
    package_logger.setLevel(level)
    for handler in list(package_logger.handlers):
        if getattr(handler, "_taskflow_handler", False):
            package_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    handler._taskflow_handler = True  # type: ignore[attr-defined]
    package_logger.addHandler(handler)
