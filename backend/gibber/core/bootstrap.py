# gibber/core/bootstrap.py
"""
Bootstrap module for server initialization.
Handles startup tasks such as logging configuration and the startup banner.
"""
import logging
from pathlib import Path

from gibber.config import settings

logger = logging.getLogger("gibber")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(filename)s:%(lineno)d %(message)s"

LOGO = r"""
   _____ _ _     _
  / ____(_) |   | |
 | |  __ _| |__ | |__   ___ _ __
 | | |_ | | '_ \| '_ \ / _ \ '__|
 | |__| | | |_) | |_) |  __/ |
  \_____|_|_.__/|_.__/ \___|_|
"""

def configure_logging(level: str | None = None, log_file: str | None = None) -> None:
    """
    Configure the "gibber" logger tree.

    Always logs to the console. When a log file is configured (LOG_FILE),
    also appends to that file, creating its directory on first use.

    Args:
        level: Log level name (default: settings.log_level)
        log_file: Path of the log file (default: settings.log_file, "" disables)
    """
    level = (level or settings.log_level).upper()
    log_file = settings.log_file if log_file is None else log_file

    root = logging.getLogger("gibber")
    root.setLevel(level)
    # Avoid stacking handlers when called more than once
    for handler in list(root.handlers):
        root.removeHandler(handler)

    formatter = logging.Formatter(LOG_FORMAT)
    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)  # Create log directory on demand
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

def print_logo() -> None:
    """Write the startup banner to the log."""
    logger.info("%s", LOGO)
