import json
import logging

import redis.asyncio as redis

from quickblog.config import settings

logger = logging.getLogger(__name__)

FEED_KEY_PREFIX = "posts:feed"
FEED_STALE_FLAG = "feed_stale"


class CacheManager:
    """
    Cache-aside store for the public post feed, backed by Redis.

    Every method tolerates Redis being absent or failing: reads report a
    miss and writes are skipped, so callers always fall through to the
    database rather than receiving substitute data.
    """

    def __init__(self) -> None:
        self._redis: redis.Redis | None = None

    async def connect(self) -> None:
        """Open the connection pool.  Called once at application startup."""
        self._redis = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        try:
            await self._redis.ping()
            logger.info("Redis connected: %s", settings.REDIS_URL)
        except Exception as exc:
            logger.warning("Redis ping failed, feed cache disabled: %s", exc)
            await self._redis.aclose()
            self._redis = None

    async def disconnect(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def get(self, key: str) -> dict | None:
        if not self._redis:
            return None
        try:
            data = await self._redis.get(key)
        except Exception as exc:
            logger.debug("Cache GET error for key=%r: %s", key, exc)
            return None
        return json.loads(data) if data is not None else None

    async def set(self, key: str, value: dict, ttl: int | None = None) -> None:
        if not self._redis:
            return
        try:
            await self._redis.set(key, json.dumps(value, default=str), ex=ttl)
        except Exception as exc:
            logger.debug("Cache SET error for key=%r: %s", key, exc)

    async def delete_pattern(self, pattern: str) -> None:
        """Delete all keys matching *pattern* using SCAN."""
        if not self._redis:
            return
        try:
            keys = [key async for key in self._redis.scan_iter(match=pattern)]
            if keys:
                await self._redis.delete(*keys)
                logger.debug("Cache invalidated %d key(s) matching %r", len(keys), pattern)
        except Exception as exc:
            logger.debug("Cache DELETE_PATTERN error for pattern=%r: %s", pattern, exc)

    @staticmethod
    def feed_key(page: int, limit: int) -> str:
        return f"{FEED_KEY_PREFIX}:{page}:{limit}"

    async def invalidate_feed(self) -> None:
        """Drop every cached feed page."""
        await self.delete_pattern(f"{FEED_KEY_PREFIX}:*")

    @staticmethod
    def mark_feed_stale(session) -> None:
        """
        Flag *session* as having changed the feed. The pages are dropped by
        ``invalidate_if_stale`` once the transaction has committed, so a
        concurrent read cannot re-cache rows that are not yet visible.
        """
        session.info[FEED_STALE_FLAG] = True

    async def invalidate_if_stale(self, session) -> None:
        if session.info.pop(FEED_STALE_FLAG, False):
            await self.invalidate_feed()


cache = CacheManager()
