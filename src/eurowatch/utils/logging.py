"""Logging for pipeline runs.

Console output goes through a rich handler on stderr so progress bars and
tables on the same console stay readable. A run can also keep a plain-text
log file next to the database, which is what cron jobs end up reading.
"""

import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "eurowatch"
FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

# Libraries that log every request or statement at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "sqlalchemy.engine")

_configured = False
_console = Console(stderr=True)


def setup_logging(level: str = "INFO", log_file: Optional[Path] = None) -> logging.Logger:
    """Configure the ``eurowatch`` logger tree.

    Args:
        level: Log level name
        log_file: Optional path that also receives every record

    Returns:
        The root ``eurowatch`` logger
    """
    global _configured

    handlers: list[logging.Handler] = [
        RichHandler(console=_console, rich_tracebacks=True, show_path=False, markup=False)
    ]
    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        handlers.append(file_handler)

    logging.basicConfig(level=level, format="%(message)s", datefmt="[%X]", handlers=handlers, force=True)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    _configured = True
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return the ``eurowatch`` logger or one of its children.

    Stages pass their own name so file logs show which step spoke.
    """
    if not _configured:
        setup_logging()
    if name:
        return logging.getLogger(f"{ROOT_LOGGER}.{name}")
    return logging.getLogger(ROOT_LOGGER)


def get_console() -> Console:
    return _console
