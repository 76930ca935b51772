"""Utility modules for generation runs."""

from .logging_config import setup_logging
from .rate_limiter import AsyncRateLimiter

__all__ = [
    "setup_logging",
    "AsyncRateLimiter",
]
