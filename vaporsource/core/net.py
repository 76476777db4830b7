"""
Async HTTP client for listing and detail pages.
Wraps a shared httpx.AsyncClient with crawler headers, size limits and
Retry-After parsing.
"""
import os
import time
import logging
from email.utils import parsedate_to_datetime
from typing import Dict, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_UA = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (compatible; VaporSource/1.0)"
DEFAULT_TIMEOUT = 30.0
MAX_PAGE_KB = 2048


class FetchError(Exception):
    """A page could not be fetched (transport failure or non-2xx status)."""

    def __init__(self, url: str, message: str, status_code: Optional[int] = None,
                 retry_after: Optional[float] = None):
        super().__init__(f"{message} ({url})")
        self.url = url
        self.status_code = status_code
        self.retry_after = retry_after


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """
    Parse a Retry-After header value.

    Accepts delta-seconds or an HTTP date. Returns seconds to wait, or None
    when the header is missing or unparseable.
    """
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(int(value)))
    except ValueError:
        pass
    try:
        retry_date = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.warning(f"[net] Could not parse Retry-After header: {value}")
        return None
    return max(0.0, retry_date.timestamp() - time.time())


class HTTPClient:
    """HTTP client shared by every fetch in a run"""

    def __init__(
        self,
        user_agent: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_size_kb: int = MAX_PAGE_KB,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.user_agent = user_agent or os.getenv("SCRAPER_USER_AGENT", DEFAULT_UA)
        self.max_size_kb = max_size_kb
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
            headers=self._get_headers(),
            transport=transport,
        )

    def _get_headers(self) -> Dict[str, str]:
        return {
            "User-Agent": self.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.5",
        }

    async def fetch_page(self, url: str) -> str:
        """
        GET a page and return its decoded text.

        Raises:
            FetchError: on transport errors or non-2xx responses
        """
        start_time = time.time()
        try:
            response = await self._client.get(url)
        except httpx.TimeoutException as e:
            logger.error(f"[net] Timeout fetching {url}: {e}")
            raise FetchError(url, f"timeout: {e}") from e
        except httpx.HTTPError as e:
            logger.error(f"[net] Transport error fetching {url}: {e}")
            raise FetchError(url, f"transport error: {e}") from e

        elapsed_ms = int((time.time() - start_time) * 1000)
        content_length = len(response.content)
        logger.debug(f"[net] GET {response.status_code} {url} ({content_length} bytes, {elapsed_ms}ms)")

        if response.status_code >= 400:
            raise FetchError(
                url,
                f"HTTP {response.status_code}",
                status_code=response.status_code,
                retry_after=parse_retry_after(response.headers.get("Retry-After")),
            )

        if content_length > self.max_size_kb * 1024:
            logger.warning(f"[net] Content too large: {content_length} bytes (limit: {self.max_size_kb}KB) - {url}")
            return response.content[: self.max_size_kb * 1024].decode(response.encoding or "utf-8", errors="replace")
        return response.text

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HTTPClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
