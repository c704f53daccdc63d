"""Cache layer: store backends and the hourly rate cache built on them."""

from vaultrate.cache.rate_cache import RateCache
from vaultrate.cache.redis_store import RedisCacheStore
from vaultrate.cache.sqlite_store import SqliteCacheStore
from vaultrate.cache.store import CacheStore

__all__ = ["CacheStore", "RateCache", "RedisCacheStore", "SqliteCacheStore"]
