"""
Logging setup for the CLI.

Library modules log through the standard logging module; the CLI routes
those records to stderr through rich.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler

_LOGGING_CONFIGURED = False


def configure_logging(console: Console, verbose: bool = False) -> None:
    """Attach a RichHandler to the package logger once per process."""
    global _LOGGING_CONFIGURED
    logger = logging.getLogger("serverless_cost_calculator")
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    if _LOGGING_CONFIGURED:
        return

    handler = RichHandler(console=console, show_path=False, markup=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
    _LOGGING_CONFIGURED = True
