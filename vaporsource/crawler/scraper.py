"""
Paginated scrape of the job board as an async stream of RawRecords.

Listing pages are walked one at a time; the detail pages found on a listing
page are fetched concurrently under a shared AdmissionController and emitted
as soon as each one is parsed. External ids are claimed in a SeenIds set
before their detail page is fetched, so an id is emitted at most once per run
even when it shows up on several pages.
"""
import logging
import threading
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, Iterable, List, Optional, Set, Tuple

from vaporsource.core.concurrency import AdmissionController
from vaporsource.core.net import DEFAULT_TIMEOUT, HTTPClient
from vaporsource.crawler.html_fetch import build_search_url, extract_detail_fields, extract_listing_links
from vaporsource.models import RawRecord
from vaporsource.pipeline.stream import fan_out

logger = logging.getLogger(__name__)

DEFAULT_MAX_PAGES = 2
DEFAULT_MAX_CONCURRENT_REQUESTS = 25

FetchPage = Callable[[str], Awaitable[str]]
ListingExtractor = Callable[[str, str], List[Tuple[str, str]]]
DetailExtractor = Callable[[str, str, str], RawRecord]


class SeenIds:
    """Set of external ids with an atomic check-and-insert."""

    def __init__(self, initial: Optional[Iterable[str]] = None):
        self._ids: Set[str] = set(initial or ())
        self._lock = threading.Lock()

    def claim(self, external_id: str) -> bool:
        """Record `external_id`; False if it was already present."""
        with self._lock:
            if external_id in self._ids:
                return False
            self._ids.add(external_id)
            return True

    def __contains__(self, external_id: str) -> bool:
        with self._lock:
            return external_id in self._ids

    def __len__(self) -> int:
        with self._lock:
            return len(self._ids)

    def snapshot(self) -> Set[str]:
        with self._lock:
            return set(self._ids)

    @classmethod
    def load(cls, path: Path) -> "SeenIds":
        """Read one id per line; a missing file starts an empty set."""
        if not path.exists():
            logger.info(f"[scraper] No job id cache at {path}; starting fresh")
            return cls()
        with open(path, "r", encoding="utf-8") as f:
            ids = [line.strip() for line in f if line.strip()]
        logger.info(f"[scraper] Loaded {len(ids)} job ids from {path}")
        return cls(ids)

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        ids = sorted(self.snapshot())
        with open(path, "w", encoding="utf-8") as f:
            f.write("".join(f"{job_id}\n" for job_id in ids))
        logger.info(f"[scraper] Wrote {len(ids)} job ids to {path}")


class Scraper:
    """
    Source stage of the pipeline.

    The fetch and extraction collaborators are injectable; by default pages
    come from an HTTPClient and are parsed with the board's selectors.
    """

    def __init__(
        self,
        base_url: str,
        fetch_page: Optional[FetchPage] = None,
        max_concurrent_requests: int = DEFAULT_MAX_CONCURRENT_REQUESTS,
        seen_ids: Optional[SeenIds] = None,
        listing_extractor: ListingExtractor = extract_listing_links,
        detail_extractor: DetailExtractor = extract_detail_fields,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.base_url = base_url
        self._http: Optional[HTTPClient] = None
        if fetch_page is None:
            self._http = HTTPClient(timeout=timeout)
            fetch_page = self._http.fetch_page
        self.fetch_page = fetch_page
        self.controller = AdmissionController(max(1, max_concurrent_requests), name="scraper")
        self.seen_ids = seen_ids if seen_ids is not None else SeenIds()
        self.listing_extractor = listing_extractor
        self.detail_extractor = detail_extractor
        self.pages_failed = 0
        self.details_failed = 0

    async def scrape(self, query: str, max_pages: int = DEFAULT_MAX_PAGES) -> AsyncIterator[RawRecord]:
        """Yield RawRecords for `query` across pages 1..max_pages."""
        logger.info(f"[scraper] Starting job scraping for '{query}' with max pages set to {max_pages}")
        try:
            for page in range(1, max_pages + 1):
                links = await self._fetch_listing(query, page, max_pages)
                if links is None:
                    continue
                details = fan_out(
                    self._unseen(links),
                    self._fetch_detail,
                    self.controller,
                    key=lambda link: f"job {link[1]}",
                    on_error=self._detail_failed,
                )
                try:
                    async for record in details:
                        logger.debug(f"[scraper] Scraped job: {record.title}")
                        yield record
                finally:
                    # cancels in-flight detail fetches before the client below is closed
                    await details.aclose()
                logger.debug(f"[scraper] Completed page {page}")
            if max_pages > 0:
                logger.info(f"[scraper] Reached maximum page limit ({max_pages}). Stopping.")
        finally:
            if self._http is not None:
                await self._http.aclose()
                self._http = None
        logger.info("[scraper] Scraping complete.")

    async def _fetch_listing(self, query: str, page: int, max_pages: int) -> Optional[List[Tuple[str, str]]]:
        url = build_search_url(self.base_url, query, page)
        logger.debug(f"[scraper] Scraping page {page} of {max_pages}: {url}")
        try:
            html = await self.fetch_page(url)
            links = self.listing_extractor(html, self.base_url)
        except Exception as e:
            self.pages_failed += 1
            logger.error(f"[scraper] Error scraping page {page}: {e}. Continuing to next page.")
            return None
        logger.debug(f"[scraper] Found {len(links)} job links on page {page}")
        return links

    async def _unseen(self, links: List[Tuple[str, str]]) -> AsyncIterator[Tuple[str, str]]:
        for url, external_id in links:
            if not self.seen_ids.claim(external_id):
                logger.debug(f"[scraper] Skipping already processed job: {external_id}")
                continue
            yield url, external_id

    async def _fetch_detail(self, link: Tuple[str, str]) -> RawRecord:
        url, external_id = link
        html = await self.fetch_page(url)
        return self.detail_extractor(html, url, external_id)

    def _detail_failed(self, link: Tuple[str, str], error: Exception) -> None:
        self.details_failed += 1


async def records_from(records: Iterable[RawRecord]) -> AsyncIterator[RawRecord]:
    """Async stream over an in-memory list (mock mode and tests)."""
    for record in records:
        yield record
