"""Logging configuration for the ciwarden CLI."""

import logging
from enum import IntEnum

from rich.console import Console
from rich.logging import RichHandler

PACKAGE_LOGGER = "ciwarden"


class LogLevel(IntEnum):
    """Log level enumeration."""

    QUIET = logging.WARNING
    NORMAL = logging.INFO
    VERBOSE = logging.DEBUG


def resolve_level(verbosity: int = 0, quiet: bool = False) -> int:
    """Map CLI flags to a logging level. ``quiet`` wins over verbosity."""
    if quiet:
        return LogLevel.QUIET
    if verbosity >= 1:
        return LogLevel.VERBOSE
    return LogLevel.NORMAL


def configure_logging(
    verbosity: int = 0,
    quiet: bool = False,
    no_color: bool = False,
) -> Console:
    """Attach a Rich handler to the package logger.

    Args:
        verbosity: Number of -v flags (0=info, 1+=debug; 2+ adds time and path)
        quiet: Only warnings and errors
        no_color: Disable colored output

    Returns:
        The stderr console the handler writes to, for reuse by command output
    """
    console = Console(stderr=True, no_color=no_color)

    handler = RichHandler(
        console=console,
        show_time=verbosity >= 2,
        show_path=verbosity >= 2,
        markup=False,
        rich_tracebacks=verbosity >= 2,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger = logging.getLogger(PACKAGE_LOGGER)
    # Replace handlers from a previous invocation (CliRunner reuses the process)
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
    logger.addHandler(handler)
    logger.setLevel(resolve_level(verbosity, quiet))
    logger.propagate = False

    return console
