from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "seekback"


def configure_logging(level: str = "INFO", console: Console | None = None) -> logging.Logger:
    """Send ``seekback.*`` log records to a rich handler on stderr.

    Calling this again only updates the level.
    """

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper())
    for handler in logger.handlers:
        if isinstance(handler, RichHandler):
            break
    else:
        handler = RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
    logger.propagate = False
    return logger
