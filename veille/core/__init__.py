"""Core module - logging, exceptions, and application infrastructure."""

from veille.core.logging import setup_logging, get_logger
from veille.core.exceptions import (
    VeilleError,
    FetchError,
    ParsingError,
    PersistenceError,
    AuthorizationError,
    RunStateError,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "VeilleError",
    "FetchError",
    "ParsingError",
    "PersistenceError",
    "AuthorizationError",
    "RunStateError",
]
