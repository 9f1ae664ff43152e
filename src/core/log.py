"""
Logging setup shared by the server and the CLI.
"""

import logging

from rich.logging import RichHandler

_CONFIGURED = False


def setup_logging(level: str = "INFO"):
    """Route the root logger through rich. Safe to call more than once."""
    global _CONFIGURED
    if _CONFIGURED:
        logging.getLogger().setLevel(level.upper())
        return
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    _CONFIGURED = True
