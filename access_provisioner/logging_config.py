"""Colored, timestamped console logging."""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

LOG_THEME = Theme({
    "logging.level.debug": "dim",
    "logging.level.info": "blue",
    "logging.level.success": "bold green",
    "logging.level.warning": "bold yellow",
    "logging.level.error": "bold red",
    "logging.level.critical": "bold white on red",
})

ROOT_LOGGER = "access_provisioner"


def make_console(stderr: bool = False) -> Console:
    return Console(theme=LOG_THEME, stderr=stderr)


def configure_logging(verbose: bool = False, console: Optional[Console] = None) -> logging.Logger:
    """Attach a RichHandler to the package logger."""
    handler = RichHandler(
        console=console or make_console(),
        show_time=True,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
        log_time_format="[%Y-%m-%d %H:%M:%S]",
    )
    handler.setFormatter(logging.Formatter("%(message)s"))

    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.handlers.clear()
    root.addHandler(handler)
    return root
