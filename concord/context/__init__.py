"""Resumption context stack and its cache."""

from .cache import CacheStats, ContextCache
from .stack import ContextStackManager, ContextSummary, format_age

__all__ = [
    "CacheStats",
    "ContextCache",
    "ContextStackManager",
    "ContextSummary",
    "format_age",
]
