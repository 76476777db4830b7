"""
Run counters.

RunStats holds the per-run counts that end up in the RunSummary; every
increment is mirrored to a process-wide Prometheus counter so a long-lived
process (the API, a scheduler) can expose totals across runs.
"""
import logging
from dataclasses import asdict, dataclass
from typing import Dict

from prometheus_client import Counter

logger = logging.getLogger(__name__)

RECORDS = Counter(
    "vaporsource_records_total",
    "Job records by pipeline outcome",
    ["outcome"],
)

OUTCOMES = (
    "scraped",
    "processed",
    "enriched",
    "filtered",
    "decode_failed",
    "classify_failed",
    "stored",
    "duplicate",
    "store_failed",
)


@dataclass
class RunStats:
    """Counters for a single ingestion run (mutated from one event loop)."""

    scraped: int = 0
    processed: int = 0
    enriched: int = 0
    filtered: int = 0
    decode_failed: int = 0
    classify_failed: int = 0
    stored: int = 0
    duplicate: int = 0
    store_failed: int = 0

    def incr(self, outcome: str, count: int = 1) -> None:
        if outcome not in OUTCOMES:
            raise ValueError(f"Unknown outcome: {outcome}")
        if count <= 0:
            return
        setattr(self, outcome, getattr(self, outcome) + count)
        RECORDS.labels(outcome=outcome).inc(count)

    @property
    def failed(self) -> int:
        return self.decode_failed + self.classify_failed + self.store_failed

    def to_dict(self) -> Dict[str, int]:
        data = asdict(self)
        data["failed"] = self.failed
        return data
