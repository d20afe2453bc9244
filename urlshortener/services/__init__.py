from dataclasses import dataclass
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from ..cache import RedisCache, create_redis
from ..config import Settings
from ..database import create_engine, create_sessionmaker
from .auth import AuthenticationService
from .probe import ReachabilityProbe
from .shortener import ShortenerService


@dataclass
class Services:
    """Pooled clients and the services built on them, owned by the app lifespan."""

    engine: AsyncEngine
    sessionmaker: async_sessionmaker[AsyncSession]
    cache: RedisCache
    http_client: httpx.AsyncClient
    shortener: ShortenerService
    auth: AuthenticationService

    async def close(self):
        await self.http_client.aclose()
        await self.cache.close()
        await self.engine.dispose()


def build_services(
    settings: Settings,
    engine: Optional[AsyncEngine] = None,
    cache: Optional[RedisCache] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> Services:
    engine = engine or create_engine(settings)
    sessionmaker = create_sessionmaker(engine)
    cache = cache or RedisCache(create_redis(settings))
    http_client = http_client or httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT)

    probe = ReachabilityProbe(http_client) if settings.VERIFY_TARGET_REACHABLE else None
    shortener = ShortenerService(
        sessionmaker,
        cache,
        code_length=settings.CODE_LENGTH,
        max_retries=settings.MAX_CODE_RETRIES,
        cache_ttl=settings.CACHE_TTL_SECONDS,
        negative_ttl=settings.NEGATIVE_CACHE_TTL_SECONDS,
        probe=probe,
    )
    auth = AuthenticationService(
        http_client,
        cache,
        host=settings.SSO_HOST,
        client_id=settings.CLIENT_ID,
        client_secret=settings.CLIENT_SECRET,
        redirect_uri=settings.REDIRECT_URI,
        cache_ttl=settings.AUTH_CACHE_TTL_SECONDS,
    )
    return Services(
        engine=engine,
        sessionmaker=sessionmaker,
        cache=cache,
        http_client=http_client,
        shortener=shortener,
        auth=auth,
    )


__all__ = ["Services", "build_services", "ShortenerService", "AuthenticationService", "ReachabilityProbe"]
