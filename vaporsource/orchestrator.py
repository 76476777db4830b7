"""
One ingestion run: scrape -> enrich -> store.

The three stages are chained as async streams, so a record can be stored
while later pages are still being scraped. Per-item failures never stop the
run; a RunSummary is always returned.
"""
import logging
import time
from dataclasses import asdict, dataclass
from typing import Any, AsyncIterable, AsyncIterator, Dict, Optional

from vaporsource.app.ai_service import ClassificationClient
from vaporsource.app.config import Settings
from vaporsource.crawler.mock_data import MOCK_JOBS
from vaporsource.crawler.scraper import Scraper, SeenIds, records_from
from vaporsource.metrics import RunStats
from vaporsource.models import RawRecord
from vaporsource.pipeline.db_insert import InMemoryJobStore, PostgresJobStore
from vaporsource.pipeline.enrichment import Classifier, Enricher
from vaporsource.pipeline.http_store import HTTPJobStore
from vaporsource.pipeline.sink import JobStore, Poster

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    scraped: int
    processed: int
    succeeded: int
    filtered: int
    duplicates: int
    failed: int
    decode_failed: int
    classify_failed: int
    store_failed: int
    pages_failed: int
    details_failed: int
    execution_time: float
    cached_ids_before: int
    cached_ids_after: int

    @property
    def ids_added(self) -> int:
        return self.cached_ids_after - self.cached_ids_before

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["ids_added"] = self.ids_added
        return data


def build_store(settings: Settings) -> JobStore:
    """Store selected by STORE_BACKEND."""
    if settings.store_backend == "postgres":
        return PostgresJobStore(settings.database_url, jobs_table=settings.jobs_table)
    if settings.store_backend == "memory":
        return InMemoryJobStore()
    return HTTPJobStore(settings.jobs_api_url, timeout=settings.http_timeout)


async def _counted(records: AsyncIterable[RawRecord], stats: RunStats) -> AsyncIterator[RawRecord]:
    try:
        async for record in records:
            stats.incr("scraped")
            yield record
    finally:
        aclose = getattr(records, "aclose", None)
        if aclose is not None:
            await aclose()


async def run_ingestion(
    settings: Settings,
    scraper: Optional[Scraper] = None,
    classifier: Optional[Classifier] = None,
    store: Optional[JobStore] = None,
) -> RunSummary:
    """
    Run the full pipeline once.

    Args:
        settings: validated Settings
        scraper: source override (default: built from settings)
        classifier: classify callable override (default: ClassificationClient)
        store: JobStore override (default: chosen by STORE_BACKEND)

    Returns:
        RunSummary with per-outcome counts and timing
    """
    start_time = time.time()
    stats = RunStats()
    owned = []

    seen_ids = SeenIds()
    if settings.use_job_id_file:
        seen_ids = SeenIds.load(settings.job_ids_path)
    cached_before = len(seen_ids)

    if settings.use_mock_jobs:
        logger.info(f"[orchestrator] Using {len(MOCK_JOBS)} mock jobs instead of scraping")
        source = records_from(MOCK_JOBS)
    else:
        if scraper is None:
            scraper = Scraper(
                settings.scraper_base_url,
                max_concurrent_requests=settings.scraper_max_concurrent_requests,
                seen_ids=seen_ids,
                timeout=settings.http_timeout,
            )
        else:
            for external_id in seen_ids.snapshot():
                scraper.seen_ids.claim(external_id)
            seen_ids = scraper.seen_ids
            cached_before = len(seen_ids)
        source = scraper.scrape(settings.query, settings.scraper_max_pages)

    if classifier is None and not settings.api_dry_run:
        client = ClassificationClient(
            settings.openai_api_key,
            settings.openai_base_url,
            settings.openai_model,
        )
        owned.append(client)
        classifier = client.classify

    if store is None and not settings.api_dry_run:
        store = build_store(settings)
        owned.append(store)

    enricher = Enricher(
        classifier,
        max_concurrent_tasks=settings.parser_max_concurrent_tasks,
        retry_policy=settings.retry,
        dry_run=settings.api_dry_run,
        stats=stats,
    )
    poster = Poster(store, dry_run=settings.api_dry_run, stats=stats)

    logger.info(f"[orchestrator] Starting ingestion run for '{settings.query}'")
    try:
        await poster.post(enricher.enrich(_counted(source, stats)))
    finally:
        for resource in owned:
            aclose = getattr(resource, "aclose", None)
            if aclose is not None:
                await aclose()
        if settings.use_job_id_file:
            seen_ids.save(settings.job_ids_path)

    summary = RunSummary(
        scraped=stats.scraped,
        processed=stats.processed,
        succeeded=stats.stored,
        filtered=stats.filtered,
        duplicates=stats.duplicate,
        failed=stats.failed,
        decode_failed=stats.decode_failed,
        classify_failed=stats.classify_failed,
        store_failed=stats.store_failed,
        pages_failed=scraper.pages_failed if scraper is not None else 0,
        details_failed=scraper.details_failed if scraper is not None else 0,
        execution_time=round(time.time() - start_time, 3),
        cached_ids_before=cached_before,
        cached_ids_after=len(seen_ids),
    )
    logger.info(
        f"[orchestrator] Run complete: scraped={summary.scraped}, processed={summary.processed}, "
        f"succeeded={summary.succeeded}, filtered={summary.filtered}, duplicates={summary.duplicates}, "
        f"failed={summary.failed}, duration={summary.execution_time}s"
    )
    return summary
