"""Logging for ingest runs.

Every module logs through ``get_logger`` under the ``veille`` namespace.
``setup_logging`` attaches the handlers once per process (re-running it
replaces them); level and file default to the ``VEILLE_LOG_LEVEL`` and
``VEILLE_LOG_FILE`` settings.
"""

import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from veille.settings import Settings

ROOT_LOGGER_NAME = "veille"
DEFAULT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

_handlers: list = []


def setup_logging(
    config: Optional["Settings"] = None,
    level: Optional[str] = None,
    log_file: Optional[Path] = None,
    format_string: str = DEFAULT_FORMAT,
) -> logging.Logger:
    """Attach console (and optional file) handlers to the ``veille`` logger.

    Args:
        config: Settings providing ``log_level``/``log_file`` (global settings if None)
        level: Overrides ``config.log_level``; unknown names fall back to INFO
        log_file: Overrides ``config.log_file``
        format_string: Record format

    Returns:
        The ``veille`` logger
    """
    if config is None:
        from veille.settings import settings as config

    level = level or config.log_level
    log_file = log_file or config.log_file

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    # A second trigger in the same process must not stack handlers
    for handler in _handlers:
        root_logger.removeHandler(handler)
        handler.close()
    _handlers.clear()

    formatter = logging.Formatter(format_string, datefmt="%Y-%m-%d %H:%M:%S")

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    _handlers.append(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        _handlers.append(file_handler)

    for handler in _handlers:
        root_logger.addHandler(handler)
    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Module logger, e.g. ``get_logger("sourcing.feed")`` -> ``veille.sourcing.feed``."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
