import json
import logging
from typing import Any

import redis.asyncio as redis

from usercache.config import settings
from usercache.middleware import record_cache_hit

logger = logging.getLogger(__name__)

# Returned by ``get_entry`` on a miss; a cached ``None`` is a hit.
MISS = object()

# Default ``version`` argument: resolve the live generation at call time.
CURRENT = object()


class CacheManager:
    """
    Read-through / write-invalidate cache backed by Redis.

    Entries live in namespaces.  Every namespace has a generation counter
    stored at ``<namespace>~version``; entry keys embed it as
    ``<namespace>:v<generation>:<key>``.  Clearing a namespace increments
    the counter atomically, so every entry written under an older
    generation (including a late write-back from a read that raced the
    clear) becomes unreachable at once.

    All public methods are safe to call even when Redis is unavailable:
    read operations report a miss and write operations are skipped, so
    the application degrades to reading straight from the store.
    """

    def __init__(self) -> None:
        self._redis: redis.Redis | None = None
        self._hits: int = 0
        self._misses: int = 0
        self._invalidations: int = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the connection pool.  Called once at application startup."""
        self._redis = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        # Ping to surface mis-configuration early (non-fatal).
        try:
            await self._redis.ping()
            logger.info("Redis connected: %s", settings.REDIS_URL)
        except Exception as exc:  # pragma: no cover
            logger.warning("Redis ping failed, cache disabled: %s", exc)

    async def disconnect(self) -> None:
        """Close the connection pool.  Called once at application shutdown."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    # ------------------------------------------------------------------
    # Raw key operations
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Any:
        """Return the cached value for *key*, or None on a miss / error."""
        if not self._redis:
            return None
        try:
            data = await self._redis.get(key)
            return json.loads(data) if data is not None else None
        except Exception as exc:
            logger.debug("Cache GET error for key=%r: %s", key, exc)
            return None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """
        Persist *value* under *key* with an optional TTL (seconds).

        Serialisation errors and Redis failures are logged but never
        propagated.
        """
        if not self._redis:
            return
        try:
            serialised = json.dumps(value, default=str)
            await self._redis.set(key, serialised, ex=ttl)
        except Exception as exc:
            logger.debug("Cache SET error for key=%r: %s", key, exc)

    async def delete_pattern(self, pattern: str, keep_prefix: str | None = None) -> None:
        """
        Delete all keys matching *pattern* using SCAN (avoids blocking KEYS),
        sparing keys that start with *keep_prefix*.
        """
        if not self._redis:
            return
        try:
            keys: list[str] = []
            async for key in self._redis.scan_iter(match=pattern):
                if keep_prefix is None or not key.startswith(keep_prefix):
                    keys.append(key)
            if keys:
                await self._redis.delete(*keys)
                logger.debug("Cache deleted %d key(s) matching %r", len(keys), pattern)
        except Exception as exc:
            logger.debug("Cache DELETE_PATTERN error for pattern=%r: %s", pattern, exc)

    # ------------------------------------------------------------------
    # Namespaced entries
    # ------------------------------------------------------------------

    @staticmethod
    def _version_key(namespace: str) -> str:
        return f"{namespace}~version"

    @staticmethod
    def entry_key(namespace: str, version: int, key: str) -> str:
        return f"{namespace}:v{version}:{key}"

    async def namespace_version(self, namespace: str) -> int | None:
        """
        Return the current generation of *namespace* (0 before the first
        clear).  Readers capture it before going to the store and pass it
        back to ``put_entry``.

        Returns None when the generation cannot be read; callers must then
        bypass the cache rather than guess a generation.
        """
        if not self._redis:
            return None
        try:
            version = await self._redis.get(self._version_key(namespace))
            return int(version) if version is not None else 0
        except Exception as exc:
            logger.debug("Cache VERSION error for namespace=%r: %s", namespace, exc)
            return None

    async def get_entry(self, namespace: str, key: str, version: Any = CURRENT) -> Any:
        """
        Return the value cached under *key* in *namespace*, or ``MISS``.

        A stored ``null`` decodes to ``None`` and counts as a hit.  An
        unreadable generation or an undecodable value is a miss.
        """
        if not self._redis:
            self._misses += 1
            return MISS
        if version is CURRENT:
            version = await self.namespace_version(namespace)
        if version is None:
            self._misses += 1
            return MISS
        try:
            data = await self._redis.get(self.entry_key(namespace, version, key))
            if data is None:
                self._misses += 1
                return MISS
            value = json.loads(data)
        except Exception as exc:
            logger.debug("Cache GET error for %s/%s: %s", namespace, key, exc)
            self._misses += 1
            return MISS
        self._hits += 1
        record_cache_hit()
        return value

    async def put_entry(
        self,
        namespace: str,
        key: str,
        value: Any,
        version: Any = CURRENT,
    ) -> None:
        """
        Store *value* under *key* in generation *version* of *namespace*
        (the live generation when omitted).

        Nothing is written when *version* has already been retired or the
        live generation cannot be read.
        """
        if not self._redis:
            return
        live = await self.namespace_version(namespace)
        if version is CURRENT:
            version = live
        if version is None or version != live:
            logger.debug("Cache PUT skipped for %s/%s: generation %s retired", namespace, key, version)
            return
        await self.set(self.entry_key(namespace, version, key), value, ttl=settings.CACHE_TTL_ENTRY)

    async def clear_namespace(self, namespace: str) -> None:
        """
        Invalidate every entry in *namespace* regardless of key.

        The generation bump is a single ``INCR``.  Keys of every older
        generation are then removed with SCAN, which also picks up
        write-backs that slipped in after an earlier sweep and sweeps that
        failed while Redis was unreachable.
        """
        if not self._redis:
            return
        try:
            new_version = await self._redis.incr(self._version_key(namespace))
        except Exception as exc:
            logger.warning("Cache CLEAR error for namespace=%r: %s", namespace, exc)
            return
        self._invalidations += 1
        logger.info("Cache namespace %r cleared (generation %d)", namespace, new_version)
        await self.delete_pattern(
            f"{namespace}:v*",
            keep_prefix=self.entry_key(namespace, new_version, ""),
        )

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    @property
    def stats(self) -> dict:
        """Return a snapshot of cache counters for metrics endpoints."""
        total = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "invalidations": self._invalidations,
            "hit_rate": round(self._hits / total * 100, 1) if total > 0 else 0.0,
        }

    def reset_stats(self) -> None:
        self._hits = 0
        self._misses = 0
        self._invalidations = 0


# Module-level singleton shared across all request handlers.
cache = CacheManager()
