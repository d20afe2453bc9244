import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import redis.asyncio as redis

from .config import Settings
from .database import as_utc, utcnow
from .observability import CACHE_HITS, CACHE_MISSES, CACHE_NEGATIVE_HITS

logger = logging.getLogger(__name__)

NOT_FOUND = "not_found"
EXPIRED = "expired"


@dataclass(frozen=True)
class CachedLink:
    target_url: Optional[str] = None
    expires_at: Optional[datetime] = None
    # Set for negative entries: NOT_FOUND or EXPIRED
    missing: Optional[str] = None

    @property
    def is_negative(self) -> bool:
        return self.missing is not None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at is not None and self.expires_at <= (now or utcnow())


def link_key(code: str) -> str:
    return f"short:{code}"


def create_redis(settings: Settings) -> redis.Redis:
    pool = redis.ConnectionPool.from_url(
        settings.REDIS_URL,
        max_connections=settings.REDIS_MAX_CONNECTIONS,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
        socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT,
        encoding="utf-8",
        decode_responses=True,
    )
    return redis.Redis(connection_pool=pool)


class RedisCache:
    """Thin wrapper over redis that never lets a cache failure reach the caller.

    Every error is logged and reported as a miss (reads) or ignored (writes),
    the durable store being the fallback of record.
    """

    def __init__(self, client: redis.Redis):
        self.client = client

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except redis.RedisError as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    async def close(self):
        await self.client.aclose()

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self.client.get(key)
        except redis.RedisError as e:
            logger.warning(f"Redis GET failed for {key}: {e}")
            return None

    async def set(self, key: str, value: str, ex: int = None, nx: bool = False) -> bool:
        try:
            return bool(await self.client.set(key, value, ex=ex, nx=nx))
        except redis.RedisError as e:
            logger.warning(f"Redis SET failed for {key}: {e}")
            return False

    async def delete(self, key: str):
        try:
            await self.client.delete(key)
        except redis.RedisError as e:
            logger.warning(f"Redis DEL failed for {key}: {e}")

    # Link entries
    async def get_link(self, code: str) -> Optional[CachedLink]:
        raw = await self.get(link_key(code))
        if raw is None:
            CACHE_MISSES.inc()
            return None

        try:
            data = json.loads(raw)
            if not isinstance(data.get("target_url", ""), (str, type(None))):
                raise TypeError("target_url must be a string")
            expires_at = data.get("expires_at")
            entry = CachedLink(
                target_url=data.get("target_url"),
                expires_at=as_utc(datetime.fromisoformat(expires_at)) if expires_at else None,
                missing=data.get("missing"),
            )
        except (ValueError, TypeError, AttributeError):
            logger.warning("Dropping malformed cache entry", extra={"code": code})
            await self.delete(link_key(code))
            CACHE_MISSES.inc()
            return None

        if entry.is_negative:
            CACHE_NEGATIVE_HITS.inc()
        else:
            CACHE_HITS.inc()
        return entry

    async def set_link(self, code: str, target_url: str, expires_at: Optional[datetime], ttl: int):
        if ttl <= 0:
            return
        payload = {
            "target_url": target_url,
            "expires_at": expires_at.isoformat() if expires_at else None,
        }
        await self.set(link_key(code), json.dumps(payload), ex=ttl)

    async def set_missing(self, code: str, reason: str, ttl: int):
        if ttl <= 0:
            return
        await self.set(link_key(code), json.dumps({"missing": reason}), ex=ttl)

    async def invalidate(self, code: str):
        await self.delete(link_key(code))
