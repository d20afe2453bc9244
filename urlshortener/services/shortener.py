import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Optional, Sequence

from pydantic import HttpUrl, TypeAdapter, ValidationError
from sqlalchemy import exc as sa_exc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .. import crud
from ..cache import RedisCache, NOT_FOUND, EXPIRED
from ..codes import CodeGenerator, generate_code, is_valid_custom_code
from ..database import as_utc, utcnow
from ..errors import (
    BackendUnavailable,
    CodeSpaceExhausted,
    CodeTaken,
    InvalidInput,
    LinkExpired,
    NotFound,
)
from ..models import IdempotencyKey, ShortLink
from ..observability import CODE_COLLISIONS, LINKS_CREATED
from .probe import ReachabilityProbe

logger = logging.getLogger(__name__)

MAX_URL_LENGTH = 2048
MAX_CODE_LENGTH = 32
MAX_PAGE_SIZE = 200
MAX_TTL_SECONDS = 10 * 365 * 24 * 3600

_url_adapter = TypeAdapter(HttpUrl)

# Errors meaning the store could not be reached (as opposed to rejecting the statement)
_STORE_ERRORS = (sa_exc.OperationalError, sa_exc.InterfaceError, sa_exc.TimeoutError, OSError)


def validate_target_url(target_url: str) -> str:
    if not isinstance(target_url, str) or not target_url:
        raise InvalidInput("Target URL is required")
    if len(target_url) > MAX_URL_LENGTH:
        raise InvalidInput(f"Target URL is too long (max {MAX_URL_LENGTH} characters)")
    try:
        _url_adapter.validate_python(target_url)
    except ValidationError:
        raise InvalidInput("Target URL must be an absolute http(s) URL")
    return target_url


def expiry_from_ttl(ttl_seconds: Optional[int]) -> Optional[datetime]:
    if ttl_seconds is None:
        return None
    if not 0 < ttl_seconds <= MAX_TTL_SECONDS:
        raise InvalidInput(f"ttl_seconds must be between 1 and {MAX_TTL_SECONDS}")
    return utcnow() + timedelta(seconds=ttl_seconds)


class ShortenerService:
    """Creates and resolves short links over a durable store with a cache in front.

    The store is authoritative: creations commit there first and only then
    warm the cache, and resolutions fall back to it on any cache miss or
    cache failure. Cache entries carry a TTL so staleness is bounded by one
    window; a link's target never changes, so a stale entry can only delay
    expiry enforcement, never redirect somewhere wrong.
    """

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        cache: RedisCache,
        *,
        code_length: int = 7,
        max_retries: int = 5,
        cache_ttl: int = 300,
        negative_ttl: int = 30,
        code_generator: CodeGenerator = generate_code,
        probe: Optional[ReachabilityProbe] = None,
    ):
        self.sessionmaker = sessionmaker
        self.cache = cache
        self.code_length = code_length
        self.max_retries = max_retries
        self.cache_ttl = cache_ttl
        self.negative_ttl = negative_ttl
        self.code_generator = code_generator
        self.probe = probe

    @asynccontextmanager
    async def _session(self):
        try:
            async with self.sessionmaker() as db:
                yield db
        except _STORE_ERRORS as e:
            logger.error(f"Durable store unavailable: {e}")
            raise BackendUnavailable() from e

    async def create(
        self,
        target_url: str,
        *,
        owner: str = "",
        code: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        idempotency_key: Optional[str] = None,
    ) -> ShortLink:
        target_url = validate_target_url(target_url)
        if code is not None and not is_valid_custom_code(code):
            raise InvalidInput("Code must be 3-32 characters of letters, digits, '-' or '_'")

        if idempotency_key:
            existing = await self._replay(owner, idempotency_key)
            if existing is not None:
                logger.info("Idempotent replay", extra={"code": existing.code})
                return existing

        if self.probe is not None and not await self.probe.is_reachable(target_url):
            raise InvalidInput("Target URL is not reachable")

        # A custom code gets exactly one attempt; its collision is the caller's problem
        attempts = 1 if code is not None else self.max_retries
        for attempt in range(1, attempts + 1):
            candidate = code if code is not None else self.code_generator(self.code_length)
            try:
                link = await self._insert(candidate, target_url, owner, expires_at, idempotency_key)
            except IntegrityError:
                if idempotency_key:
                    # A concurrent request with the same key may have won the race
                    existing = await self._replay(owner, idempotency_key)
                    if existing is not None:
                        return existing
                if code is not None:
                    raise CodeTaken()
                CODE_COLLISIONS.inc()
                logger.info(f"Short code collision on attempt {attempt}/{attempts}")
                continue

            LINKS_CREATED.inc()
            logger.info("Created short link", extra={"code": link.code})
            await self._cache_link(link)
            return link

        logger.error(f"Failed to generate unique short code after {attempts} attempts")
        raise CodeSpaceExhausted()

    async def _insert(
        self,
        code: str,
        target_url: str,
        owner: str,
        expires_at: Optional[datetime],
        idempotency_key: Optional[str],
    ) -> ShortLink:
        link = ShortLink(
            code=code,
            target_url=target_url,
            owner=owner,
            created_at=utcnow(),
            expires_at=expires_at,
        )
        record = None
        if idempotency_key:
            record = IdempotencyKey(owner=owner, key=idempotency_key, code=code)
        async with self._session() as db:
            return await crud.insert_link(db, link, record)

    async def _replay(self, owner: str, idempotency_key: str) -> Optional[ShortLink]:
        async with self._session() as db:
            record = await crud.get_idempotency_key(db, owner, idempotency_key)
            if record is None:
                return None
            return await crud.get_link_by_code(db, record.code)

    async def _cache_link(self, link: ShortLink, now: Optional[datetime] = None):
        ttl = self.cache_ttl
        expires_at = as_utc(link.expires_at)
        if expires_at is not None:
            ttl = min(ttl, int((expires_at - (now or utcnow())).total_seconds()))
        await self.cache.set_link(link.code, link.target_url, expires_at, ttl)

    async def resolve(self, code: str) -> str:
        if not code or len(code) > MAX_CODE_LENGTH:
            raise NotFound()
        now = utcnow()

        # 1. Cache (hot path)
        cached = await self.cache.get_link(code)
        if cached is not None:
            if cached.missing == NOT_FOUND:
                raise NotFound()
            if cached.missing == EXPIRED:
                raise LinkExpired()
            if cached.target_url and not cached.is_expired(now):
                return cached.target_url
            await self.cache.invalidate(code)

        # 2. Durable store
        async with self._session() as db:
            link = await crud.get_link_by_code(db, code)

        if link is None:
            await self.cache.set_missing(code, NOT_FOUND, self.negative_ttl)
            raise NotFound()
        if link.is_expired(now):
            await self.cache.set_missing(code, EXPIRED, self.negative_ttl)
            raise LinkExpired()

        # 3. Read-through fill
        await self._cache_link(link, now)
        return link.target_url

    async def get(self, code: str) -> ShortLink:
        async with self._session() as db:
            link = await crud.get_link_by_code(db, code)
        if link is None:
            raise NotFound()
        return link

    async def list_links(self, owner: str, after: Optional[str] = None, limit: int = 50) -> Sequence[ShortLink]:
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        async with self._session() as db:
            return await crud.list_links_by_owner(db, owner, after, limit)

    async def delete(self, owner: str, code: str) -> ShortLink:
        """Soft delete: the link expires now and its code stays reserved.

        A resolve that read the row just before this commit can still write a
        positive cache entry after the invalidation below, so the link may keep
        redirecting for up to `cache_ttl` seconds (300 by default).
        """
        async with self._session() as db:
            link = await crud.get_link_by_code(db, code)
            if link is None or link.owner != owner:
                raise NotFound()
            now = utcnow()
            if not link.is_expired(now):
                link = await crud.expire_link(db, link, now)

        await self.cache.invalidate(code)
        logger.info("Expired short link", extra={"code": code})
        return link
