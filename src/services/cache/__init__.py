"""Query cache package."""

from src.services.cache.query_cache import CacheEntry, QueryCache

__all__ = ["CacheEntry", "QueryCache"]
