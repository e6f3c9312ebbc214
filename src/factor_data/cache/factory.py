"""Build the configured cache backend."""

from __future__ import annotations

import logging

from factor_data.cache.base import DataCache
from factor_data.cache.memory import InMemoryCache
from factor_data.cache.noop import NoopCache
from factor_data.cache.sqlite import SqliteCache
from factor_data.core.config import CacheConfig
from factor_data.core.exceptions import CacheError
from factor_data.core.models import CacheBackend

logger = logging.getLogger(__name__)


async def create_cache(config: CacheConfig) -> DataCache:
    """Create (and, for SQLite, initialize) the backend named by config."""
    logger.debug("Creating %s cache backend", config.backend)
    if config.backend == CacheBackend.MEMORY:
        return InMemoryCache()
    if config.backend == CacheBackend.SQLITE:
        cache = SqliteCache(config.sqlite_path)
        await cache.initialize()
        return cache
    if config.backend == CacheBackend.DISABLED:
        return NoopCache()
    raise CacheError(
        f"Unsupported cache backend: {config.backend}",
        context={"operation": "create_cache", "backend": str(config.backend)},
    )
