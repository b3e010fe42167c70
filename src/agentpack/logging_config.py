"""Logging setup for agentpack.

Library modules log through ``logging.getLogger(__name__)`` and never
configure handlers themselves. The CLI calls :func:`setup_logging` once to
route the ``agentpack`` logger tree through a Rich handler on stderr.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_root_logger = logging.getLogger("agentpack")


def verbosity_to_level(verbosity: int) -> int:
    """Map a ``-v`` count to a logging level."""
    if verbosity >= 2:
        return logging.DEBUG
    if verbosity == 1:
        return logging.INFO
    return logging.WARNING


def setup_logging(level: str | int = "WARNING", console: Console | None = None) -> None:
    """Configure logging for agentpack.

    Args:
        level: Log level name (DEBUG, INFO, ...) or int.
        console: Rich console to render into. Defaults to stderr.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.WARNING)

    _root_logger.setLevel(level)
    _root_logger.handlers.clear()

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_time=False,
        show_path=level <= logging.DEBUG,
        markup=False,
        rich_tracebacks=True,
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    _root_logger.addHandler(handler)
    _root_logger.propagate = False
