"""Logging setup for the command line."""

import logging

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(verbosity: int = 0, quiet: bool = False, console: Console | None = None) -> logging.Logger:
    """
    Configure the package logger.

    Args:
        verbosity: Verbosity level (0=WARNING, 1=INFO, 2+=DEBUG)
        quiet: Only report errors, overrides verbosity
        console: Console to log to, stderr by default

    Returns:
        Configured package logger
    """
    if quiet:
        log_level = logging.ERROR
    elif verbosity >= 2:
        log_level = logging.DEBUG
    elif verbosity >= 1:
        log_level = logging.INFO
    else:
        log_level = logging.WARNING

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=verbosity >= 2,
        markup=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))

    logger = logging.getLogger("epub2mdbook")
    logger.setLevel(log_level)
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.propagate = False
    return logger
