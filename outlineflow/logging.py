"""Logging utilities."""

from __future__ import annotations

import logging

from rich.logging import RichHandler


def configure_logging(level: str = "INFO") -> None:
    """Configure application logging.

    Safe to call more than once; the rich handler is only installed once.

    Args:
        level: Logging level name.
    """

    formatter = logging.Formatter(fmt="%(name)s: %(message)s", datefmt="%Y-%m-%d %H:%M:%S")

    root = logging.getLogger()
    root.setLevel(level.upper())
    existing = [h for h in root.handlers if isinstance(h, RichHandler)]
    if existing:
        for handler in existing:
            handler.setFormatter(formatter)
        return

    handler = RichHandler(rich_tracebacks=True, show_time=True, show_level=True)
    handler.setFormatter(formatter)
    root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Get a module logger."""

    return logging.getLogger(name)
