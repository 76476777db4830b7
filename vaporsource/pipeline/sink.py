"""
Sink stage: hand enriched records to a JobStore and account for the outcome.

Records are stored one at a time in the order the enrichment stage emits
them. A duplicate is an expected outcome and counted separately from
failures; nothing a store does for one record stops the next one.
"""
import logging
from enum import Enum
from typing import AsyncIterable, Optional, Protocol

from vaporsource.metrics import RunStats
from vaporsource.models import EnrichedRecord

logger = logging.getLogger(__name__)


class StoreOutcome(str, Enum):
    """Result of storing one record"""
    CREATED = "created"
    DUPLICATE = "duplicate"
    CLIENT_ERROR = "client_error"
    SERVER_ERROR = "server_error"


class JobStore(Protocol):
    async def store(self, record: EnrichedRecord) -> StoreOutcome:
        ...


class Poster:
    """Consumes the enriched stream and writes each record to `store`."""

    def __init__(self, store: Optional[JobStore], dry_run: bool = False, stats: Optional[RunStats] = None):
        if store is None and not dry_run:
            raise ValueError("a store is required unless dry_run is enabled")
        self.store = store
        self.dry_run = dry_run
        self.stats = stats if stats is not None else RunStats()

    async def post(self, records: AsyncIterable[EnrichedRecord]) -> None:
        async for record in records:
            await self.post_one(record)

    async def post_one(self, record: EnrichedRecord) -> StoreOutcome:
        if self.dry_run:
            logger.info(f"[sink] DEV MODE: Would post job {record.external_id}: {record.title}")
            outcome = StoreOutcome.CREATED
        else:
            try:
                outcome = await self.store.store(record)
            except Exception as e:
                logger.error(f"[sink] Store raised for job {record.external_id}: {e}")
                outcome = StoreOutcome.SERVER_ERROR

        if outcome is StoreOutcome.CREATED:
            self.stats.incr("stored")
            logger.info(f"[sink] Posted job {record.external_id}: {record.title}")
        elif outcome is StoreOutcome.DUPLICATE:
            self.stats.incr("duplicate")
            logger.debug(f"[sink] Job {record.external_id} already stored, skipping")
        elif outcome is StoreOutcome.CLIENT_ERROR:
            self.stats.incr("store_failed")
            logger.error(f"[sink] Store rejected job {record.external_id}")
        else:
            self.stats.incr("store_failed")
            logger.critical(f"[sink] Store failed for job {record.external_id}; the store is unavailable")
        return outcome
