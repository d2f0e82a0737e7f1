import time
import logging
import threading
from copy import deepcopy
from collections import namedtuple
from cachetools import TTLCache
from config import SEARCH_CACHE_TTL, SEARCH_CACHE_MAXSIZE

logger = logging.getLogger(__name__)

CachedSearch = namedtuple("CachedSearch", ["user_id", "query", "results"])


class SearchResultCache:
    """
    Per-user, per-query memo of search results.

    Entries are keyed by (user_id, query) and expire passively `ttl` seconds
    after they were stored. Any write by a user must call invalidate_user()
    so that user's results are rebuilt from the document store.

    Lookups never raise: a damaged or mismatched entry is dropped and
    reported as a miss.
    """

    def __init__(self, ttl=SEARCH_CACHE_TTL, maxsize=SEARCH_CACHE_MAXSIZE, timer=time.monotonic):
        self.ttl = ttl
        self._cache = TTLCache(maxsize=maxsize, ttl=ttl, timer=timer)
        self._lock = threading.Lock()

    @staticmethod
    def make_key(user_id, query):
        return (user_id, query)

    def lookup(self, user_id, query):
        """Return a copy of the cached results, or None when absent or expired."""
        key = self.make_key(user_id, query)
        try:
            with self._lock:
                entry = self._cache.get(key)
                if entry is None:
                    return None
                if entry.user_id != user_id or entry.query != query:
                    logger.warning(f"Dropping mismatched search cache entry for user {user_id}")
                    self._cache.pop(key, None)
                    return None
                return deepcopy(entry.results)
        except Exception as e:
            logger.error(f"Search cache lookup failed for user {user_id}: {e}")
            return None

    def store(self, user_id, query, results):
        key = self.make_key(user_id, query)
        try:
            entry = CachedSearch(user_id, query, deepcopy(list(results)))
            with self._lock:
                self._cache[key] = entry
        except Exception as e:
            logger.error(f"Search cache store failed for user {user_id}: {e}")

    def invalidate_user(self, user_id):
        """Remove every cached result set owned by user_id. Returns the count removed."""
        with self._lock:
            try:
                self._cache.expire()
                # Full scan; switch to a per-user key index if the cache grows large.
                stale = [key for key in list(self._cache.keys()) if key[0] == user_id]
                for key in stale:
                    self._cache.pop(key, None)
                removed = len(stale)
            except Exception as e:
                # Losing every entry is safe, keeping one of this user's is not
                logger.error(f"Search cache invalidation failed for user {user_id}, clearing all: {e}")
                removed = len(self._cache)
                self._cache.clear()
        if removed:
            logger.debug(f"Invalidated {removed} cached searches for user {user_id}")
        return removed

    def clear(self):
        with self._lock:
            self._cache.clear()

    def __len__(self):
        with self._lock:
            self._cache.expire()
            return len(self._cache)
