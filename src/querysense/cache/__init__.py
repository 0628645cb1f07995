"""In-memory implementation of the result cache contract."""

from .memory import CacheEntry, CacheStatistics, InMemoryResultCache

__all__ = ["CacheEntry", "CacheStatistics", "InMemoryResultCache"]
