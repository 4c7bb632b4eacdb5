"""Rate-limited note posting shared by the worker processes."""

from .controls import DEFAULT_MAX_REQUESTS, DEFAULT_REFILL_INTERVAL, AcquireCancelled, RateLimiter
from .interfaces import NotePoster
from .notes import Note, Visibility

__all__ = [
    "AcquireCancelled",
    "DEFAULT_MAX_REQUESTS",
    "DEFAULT_REFILL_INTERVAL",
    "Note",
    "NotePoster",
    "RateLimiter",
    "Visibility",
]
