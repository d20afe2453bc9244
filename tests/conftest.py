import time
from typing import AsyncGenerator, Optional

import httpx
import pytest
import redis.exceptions
from httpx import AsyncClient, ASGITransport

from urlshortener.cache import RedisCache
from urlshortener.config import Settings
from urlshortener.database import create_engine, create_sessionmaker
from urlshortener.main import create_app
from urlshortener.migrate import upgrade
from urlshortener.services import build_services
from urlshortener.services.shortener import ShortenerService

USERS = {
    "Bearer alice-token": "alice@example.com",
    "Bearer bob-token": "bob@example.com",
}


class FakeRedis:
    """In-memory stand-in for redis.asyncio.Redis covering the commands the app uses."""

    def __init__(self):
        self.store: dict[str, tuple[str, Optional[float]]] = {}
        self.ttls: dict[str, Optional[int]] = {}

    def _live(self, key: str) -> bool:
        if key not in self.store:
            return False
        _, deadline = self.store[key]
        if deadline is not None and deadline <= time.monotonic():
            del self.store[key]
            return False
        return True

    async def ping(self):
        return True

    async def get(self, key):
        return self.store[key][0] if self._live(key) else None

    async def set(self, key, value, ex=None, nx=False):
        if nx and self._live(key):
            return None
        self.store[key] = (value, time.monotonic() + ex if ex else None)
        self.ttls[key] = ex
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            removed += self.store.pop(key, None) is not None
        return removed

    async def aclose(self):
        pass


class BrokenRedis:
    """Every command fails the way an unreachable server does."""

    def __getattr__(self, name):
        async def fail(*args, **kwargs):
            raise redis.exceptions.ConnectionError("Connection refused")
        return fail


def sso_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/profile":
        email = USERS.get(request.headers.get("authorization", ""))
        if email is None:
            return httpx.Response(401, text="unauthorized")
        return httpx.Response(200, json={"email": email})
    if request.url.path == "/oauth2/token":
        form = dict(httpx.QueryParams(request.content.decode()))
        if form.get("code") != "good-code":
            return httpx.Response(400, json={"error": "invalid_grant"})
        return httpx.Response(200, json={"access_token": "alice-token", "token_type": "Bearer"})
    return httpx.Response(404)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'shortener.db'}",
        REDIS_URL="redis://localhost:6379/15",
        ENVIRONMENT="test",
        BASE_URL="http://sho.rt",
        SSO_HOST="http://sso.test",
    )


@pytest.fixture
async def engine(settings):
    engine = create_engine(settings)
    await upgrade(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessionmaker(engine):
    return create_sessionmaker(engine)


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def cache(fake_redis) -> RedisCache:
    return RedisCache(fake_redis)


@pytest.fixture
def broken_cache() -> RedisCache:
    return RedisCache(BrokenRedis())


@pytest.fixture
def shortener(sessionmaker, cache) -> ShortenerService:
    return ShortenerService(sessionmaker, cache, cache_ttl=3600, negative_ttl=30)


@pytest.fixture
async def sso_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    calls = []

    def handler(request):
        calls.append(request)
        return sso_handler(request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as c:
        c.calls = calls
        yield c


@pytest.fixture
async def client(settings, engine, cache, sso_client) -> AsyncGenerator[AsyncClient, None]:
    services = build_services(settings, engine=engine, cache=cache, http_client=sso_client)
    app = create_app(settings, services)

    async with ASGITransport(app=app) as transport:
        async with AsyncClient(transport=transport, base_url="http://test") as c:
            yield c


@pytest.fixture
def alice() -> dict:
    return {"Authorization": "Bearer alice-token"}


@pytest.fixture
def bob() -> dict:
    return {"Authorization": "Bearer bob-token"}
