"""
Cache utilities for the squares settlement service

Layer-1 is the shared key-value store (Redis through Flask-Caching) with
per-key TTLs; Layer-2 is the per-client ``QueryCache``. ``TieredCache``
owns both and the invalidation order between them.

Every Layer-1 operation is best-effort: an unreachable or unconfigured
store degrades to a no-op and callers recompute from the source.
"""

import logging
from abc import ABC, abstractmethod

from squares.utils.errors import CacheUnavailable
from squares.utils.query_cache import QueryCache, query_keys

logger = logging.getLogger(__name__)

CONTEST_TTL = 3600
CONTESTS_LIST_TTL = 60
GAME_DETAILS_TTL = 3600
USER_PROFILE_TTL = 300

NULL_CACHE_TYPES = {"", "null", "NullCache", "flask_caching.backends.NullCache"}


def contest_cache_key(contest_id, chain_id):
    return f"contest:{chain_id}:{contest_id}"


def contests_list_cache_key(chain_id):
    return f"contestsList:{chain_id}"


def game_details_cache_key(game_id):
    return f"gameDetails:{game_id}"


def user_profile_cache_key(address):
    return f"userProfile:{address.lower()}"


class CacheStore(ABC):
    """Capability interface for the Layer-1 key-value store"""

    @abstractmethod
    def get(self, key):
        """Cached value, or None on a miss"""

    @abstractmethod
    def set(self, key, value, ttl=None):
        """Store a value; returns False when the write did not happen"""

    @abstractmethod
    def delete(self, key):
        """Drop a key; returns False when nothing was deleted"""

    @property
    def is_available(self):
        return True


class NullCacheStore(CacheStore):
    """Store used when no cache is configured: every read misses"""

    def get(self, key):
        return None

    def set(self, key, value, ttl=None):
        return False

    def delete(self, key):
        return False

    @property
    def is_available(self):
        return False


class FlaskCacheStore(CacheStore):
    """Layer-1 store backed by a Flask-Caching ``Cache``.

    Backend errors are logged and swallowed here so they never reach callers.
    """

    def __init__(self, cache):
        self.cache = cache

    def _call(self, operation, key, fallback, *args, **kwargs):
        try:
            return getattr(self.cache, operation)(key, *args, **kwargs)
        except Exception as e:
            logger.warning(f"Cache {operation} failed for key {key}: {e}")
            return fallback

    def get(self, key):
        return self._call("get", key, None)

    def set(self, key, value, ttl=None):
        return bool(self._call("set", key, False, value, timeout=ttl))

    def delete(self, key):
        return bool(self._call("delete", key, False))

    def ping(self):
        """Round-trip a sentinel key.

        Raises:
            CacheUnavailable: the backend cannot be reached
        """
        try:
            self.cache.set("__ping__", 1, timeout=5)
            return self.cache.get("__ping__") == 1
        except Exception as e:
            raise CacheUnavailable(str(e)) from e


def build_cache_store(app, cache):
    """Pick the Layer-1 store for an app: the Flask-Caching backend or the null store"""
    cache_type = app.config.get("CACHE_TYPE") or ""
    if cache_type in NULL_CACHE_TYPES:
        logger.info("Cache not configured, contest reads go straight to the source")
        return NullCacheStore()
    return FlaskCacheStore(cache)


class TieredCache:
    """Two-tier cache: shared Layer-1 store plus per-client Layer-2 query cache"""

    def __init__(self, store=None, query_cache=None, ttls=None):
        self.store = store or NullCacheStore()
        self.query_cache = query_cache or QueryCache()
        self.ttls = {
            "contest": CONTEST_TTL,
            "contestsList": CONTESTS_LIST_TTL,
            "gameDetails": GAME_DETAILS_TTL,
            "userProfile": USER_PROFILE_TTL,
        }
        self.ttls.update(ttls or {})

    # Layer-1

    def get(self, key, default=None):
        value = self.store.get(key)
        return default if value is None else value

    def set(self, key, value, ttl=None):
        return self.store.set(key, value, ttl=ttl)

    def delete(self, key):
        return self.store.delete(key)

    def get_or_load(self, key, loader, ttl=None, is_valid=None):
        """Read-through: return the cached value or load, store and return it.

        A cached value failing ``is_valid`` is deleted and treated as a miss.
        The store is populated after the load; a failed write is ignored.
        """
        cached = self.store.get(key)
        if cached is not None:
            if is_valid is None or is_valid(cached):
                logger.debug(f"Cache hit for key: {key}")
                return cached
            logger.info(f"Cached value for {key} is incomplete, reloading")
            self.store.delete(key)

        logger.debug(f"Cache miss for key: {key}")
        value = loader()
        if value is not None:
            self.store.set(key, value, ttl=ttl)
        return value

    # Both tiers

    def read(self, query_key, cache_key, loader, ttl=None, stale_time=0, is_valid=None):
        """Layer-2 fetch whose fetcher is a Layer-1 read-through"""
        return self.query_cache.fetch(
            query_key,
            lambda: self.get_or_load(cache_key, loader, ttl=ttl, is_valid=is_valid),
            stale_time=stale_time,
        )

    def invalidate_contest(self, contest_id, chain_id):
        """Drop a contest from both tiers after a mutation.

        Deletes the Layer-1 key first, then marks the Layer-2 key stale; a
        read landing between the two steps may still see the old value.
        Safe to call repeatedly.
        """
        self.store.delete(contest_cache_key(contest_id, chain_id))
        self.query_cache.invalidate(query_keys.contest(chain_id, contest_id))
        logger.info(f"Cache cleared for contest {contest_id} on chain {chain_id}")

    def force_refresh(self, contest_id, chain_id):
        """Refresh boundary: the next contest read recomputes from the chain"""
        self.invalidate_contest(contest_id, chain_id)

    def invalidate_contests(self, contest_ids, chain_id):
        for contest_id in contest_ids:
            self.invalidate_contest(contest_id, chain_id)

    def invalidate_game_scores(self, game_id):
        """Game scores live only in Layer-2"""
        self.query_cache.invalidate(query_keys.game_scores(game_id))

    def stats(self):
        return {
            "layer1_available": self.store.is_available,
            "layer1_type": type(self.store).__name__,
            "layer2_entries": len(self.query_cache),
            "ttls": dict(self.ttls),
        }
