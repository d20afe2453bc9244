import hashlib
import logging
from dataclasses import dataclass

import httpx

from ..cache import RedisCache
from ..errors import BackendUnavailable, Unauthorized

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenGrant:
    access_token: str
    token_type: str


def token_key(token: str) -> str:
    digest = hashlib.sha256(token.encode()).hexdigest()
    return f"token:{digest}"


class AuthenticationService:
    """Delegates identity to the SSO provider, caching introspection results briefly."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        cache: RedisCache,
        host: str,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        cache_ttl: int = 30,
    ):
        self.http_client = http_client
        self.cache = cache
        self.host = host.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.cache_ttl = cache_ttl

    async def introspect_token(self, authorization: str) -> str:
        """Return the email behind an Authorization header value."""
        cached = await self.cache.get(token_key(authorization))
        if cached:
            logger.debug("Token cache hit, skipping profile call")
            return cached

        try:
            response = await self.http_client.get(
                f"{self.host}/profile",
                headers={"Authorization": authorization},
            )
        except httpx.HTTPError as e:
            logger.error(f"SSO profile call failed: {e}")
            raise BackendUnavailable("Authentication provider unavailable") from e

        if response.status_code in (400, 401):
            raise Unauthorized()
        if response.status_code != 200:
            logger.error(f"Unexpected SSO profile status: {response.status_code}")
            raise BackendUnavailable("Authentication provider unavailable")

        try:
            email = response.json()["email"]
        except (ValueError, KeyError, TypeError) as e:
            raise BackendUnavailable("Malformed authentication provider response") from e

        # Failure to cache only costs another profile call
        await self.cache.set(token_key(authorization), email, ex=self.cache_ttl, nx=True)
        return email

    async def exchange_token(self, authorization_code: str) -> TokenGrant:
        try:
            response = await self.http_client.post(
                f"{self.host}/oauth2/token",
                data={
                    "grant_type": "authorization_code",
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "redirect_uri": self.redirect_uri,
                    "code": authorization_code,
                },
            )
        except httpx.HTTPError as e:
            logger.error(f"SSO token exchange failed: {e}")
            raise BackendUnavailable("Authentication provider unavailable") from e

        if response.status_code == 400:
            raise Unauthorized()
        if response.status_code != 200:
            logger.error(f"Unexpected SSO token status: {response.status_code}")
            raise BackendUnavailable("Authentication provider unavailable")

        try:
            data = response.json()
            return TokenGrant(access_token=data["access_token"], token_type=data["token_type"])
        except (ValueError, KeyError, TypeError) as e:
            raise BackendUnavailable("Malformed authentication provider response") from e
