"""Utility modules."""

from .hashing import compute_hash
from .http import RateLimitedClient
from .logging import get_console, get_logger, setup_logging
from .progress import create_progress
from .rate_limit import MinuteBudget

__all__ = [
    "MinuteBudget",
    "RateLimitedClient",
    "compute_hash",
    "create_progress",
    "get_console",
    "get_logger",
    "setup_logging",
]
