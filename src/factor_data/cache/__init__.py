"""factor_data.cache — Cache port and its backends."""

from factor_data.cache.base import CacheEntry, DataCache, utc_now
from factor_data.cache.factory import create_cache
from factor_data.cache.memory import InMemoryCache
from factor_data.cache.noop import NoopCache
from factor_data.cache.sqlite import SqliteCache

__all__ = [
    "CacheEntry",
    "DataCache",
    "InMemoryCache",
    "NoopCache",
    "SqliteCache",
    "create_cache",
    "utc_now",
]
