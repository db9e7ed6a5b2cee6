"""Logging setup — rich console handler plus optional rotating log file."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "procdeck"

_configured = False


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 3,
    console: bool | Console = True,
) -> logging.Logger:
    """Configure the ``procdeck`` logger once per process.

    Process output is printed to stdout by the CLI, so the Rich handler
    writes to stderr unless a ``Console`` is passed in explicitly.

    Args:
        level: Level name, e.g. ``'DEBUG'`` or ``'warning'``. Unknown names
            fall back to INFO.
        log_file: Rotating log file path (``~`` is expanded). None disables it.
        max_bytes: Rotation threshold in bytes.
        backup_count: Rotated files to keep.
        console: True for a stderr Rich handler, False for none, or a
            ``rich.console.Console`` to log through.

    Returns:
        The ``procdeck`` logger.
    """
    global _configured
    if _configured:
        return logging.getLogger(ROOT_LOGGER)

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.handlers.clear()
    logger.propagate = False

    if console:
        target = console if isinstance(console, Console) else Console(stderr=True)
        rich_handler = RichHandler(
            console=target,
            rich_tracebacks=True,
            show_time=False,
            show_path=False,
            markup=False,
        )
        rich_handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        logger.addHandler(rich_handler)

    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(name)s | %(levelname)-8s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(file_handler)

    _configured = True
    return logger


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """Return a logger under the ``procdeck`` namespace.

    Args:
        name: Dotted logger name, e.g. ``'procdeck.sessions.lifecycle'``.
    """
    return logging.getLogger(name)
