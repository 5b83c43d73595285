import logging
import httpx
from typing import Optional
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; KubeFeeds/0.1; +https://kubernetes.io)"

class HTTPClient:
    def __init__(self, timeout: float = 15.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        self.client = httpx.AsyncClient(http2=False, follow_redirects=True, transport=transport)

    def _get_headers(self):
        return {
            "User-Agent": USER_AGENT,
            "Accept": "application/rss+xml,application/atom+xml,application/xml;q=0.9,text/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.5",
            "Connection": "keep-alive",
            "Cache-Control": "max-age=0",
        }

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type((httpx.RequestError, httpx.TimeoutException)),
        reraise=True,
    )
    async def fetch(self, url: str) -> str:
        """
        Fetches a feed document, retrying on transport errors.
        HTTP error statuses are raised immediately without a retry.
        """
        try:
            response = await self.client.get(url, headers=self._get_headers(), timeout=self.timeout)
            response.raise_for_status()
            logger.debug(f"Successfully fetched {url}")
            return response.text
        except Exception as e:
            logger.warning(f"Failed to fetch {url}: {e}")
            raise # Let tenacity handle the retry

    async def close(self):
        await self.client.aclose()
