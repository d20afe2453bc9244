import logging

import httpx

logger = logging.getLogger(__name__)


class ReachabilityProbe:
    """Checks that a submitted target answers before it is shortened."""

    def __init__(self, http_client: httpx.AsyncClient):
        self.http_client = http_client

    async def is_reachable(self, url: str) -> bool:
        try:
            response = await self.http_client.head(url, follow_redirects=True)
        except httpx.HTTPError as e:
            logger.info(f"Target {url[:100]} unreachable: {e}")
            return False
        # 4xx still proves the host is up; some servers reject HEAD outright
        return response.status_code < 500
