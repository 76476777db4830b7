"""
Enrichment stage: classify each scraped record and keep the relevant ones.

Every record goes through the same path under the parser's
AdmissionController: build the prompt, call the classifier through the retry
policy, decode the response into a Judgement, drop irrelevant postings and
merge the rest. A failure on one record is logged with its id and never
affects the others. Dry-run mode swaps the network call for a fixed
placeholder judgement and leaves the rest of the flow untouched.
"""
import asyncio
import json
import logging
from typing import Any, AsyncIterable, AsyncIterator, Awaitable, Callable, Optional

from pydantic import ValidationError

from vaporsource.app.ai_service import build_prompt, is_retryable
from vaporsource.core.concurrency import AdmissionController
from vaporsource.core.retry import DEFAULT_POLICY, RetriesExhaustedError, RetryPolicy
from vaporsource.metrics import RunStats
from vaporsource.models import (
    ONGOING_DEADLINE,
    Degree,
    Domain,
    EnrichedRecord,
    Judgement,
    Modality,
    RawRecord,
)
from vaporsource.pipeline.stream import fan_out

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT_TASKS = 25

Classifier = Callable[[str], Awaitable[str]]


class DecodeError(ValueError):
    """Classifier output did not match the Judgement shape."""

    def __init__(self, message: str, payload: str):
        super().__init__(message)
        self.payload = payload


def decode_judgement(content: str) -> Judgement:
    """
    Parse the classifier's message content.

    Raises:
        DecodeError: invalid JSON, not an object, or a field outside its
            declared type, range or enum. Values are never coerced, so
            "yes" is not a boolean and "3" is not an integer.
    """
    try:
        data = json.loads(content)
    except (TypeError, json.JSONDecodeError) as e:
        raise DecodeError(f"invalid JSON: {e}", content) from e
    if not isinstance(data, dict):
        raise DecodeError(f"expected a JSON object, got {type(data).__name__}", content)
    try:
        return Judgement.model_validate_json(content, strict=True)
    except ValidationError as e:
        raise DecodeError(f"response failed validation: {e.error_count()} error(s)", content) from e


def placeholder_judgement(record: RawRecord) -> Judgement:
    """Fixed judgement used in dry-run mode."""
    return Judgement(
        summary=f"Mock parsed description for {record.title}",
        min_degree=Degree.BACHELORS,
        min_years_experience=3,
        modality=Modality.REMOTE,
        domain=Domain.BACKEND,
        languages={"Python"},
        technologies={"Docker"},
        deadline_date=ONGOING_DEADLINE,
        is_relevant=True,
    )


class Enricher:
    """Classifies RawRecords and emits EnrichedRecords for relevant postings"""

    def __init__(
        self,
        classifier: Optional[Classifier] = None,
        max_concurrent_tasks: int = DEFAULT_MAX_CONCURRENT_TASKS,
        retry_policy: RetryPolicy = DEFAULT_POLICY,
        dry_run: bool = False,
        stats: Optional[RunStats] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if classifier is None and not dry_run:
            raise ValueError("a classifier is required unless dry_run is enabled")
        self.classifier = classifier
        self.controller = AdmissionController(max(1, max_concurrent_tasks), name="parser")
        self.retry_policy = retry_policy
        self.dry_run = dry_run
        self.stats = stats if stats is not None else RunStats()
        self.sleep = sleep

    def enrich(self, records: AsyncIterable[RawRecord]) -> AsyncIterator[EnrichedRecord]:
        """Stream of enriched, relevant records in completion order."""
        return fan_out(
            records,
            self.process,
            self.controller,
            key=lambda record: f"job {record.external_id}",
            on_error=self._unexpected_error,
        )

    async def process(self, record: RawRecord) -> Optional[EnrichedRecord]:
        """Classify one record; None means it was dropped."""
        self.stats.incr("processed")

        if self.dry_run:
            logger.debug(f"[enrichment] DEV MODE: Simulating AI response for job: {record.title}")
            judgement = placeholder_judgement(record)
        else:
            judgement = await self._classify(record)
            if judgement is None:
                return None

        if not judgement.is_relevant:
            self.stats.incr("filtered")
            logger.debug(f"[enrichment] Filtering out non-software related job {record.external_id}: {record.title}")
            return None

        enriched = EnrichedRecord.merge(record, judgement)
        self.stats.incr("enriched")
        return enriched

    async def _classify(self, record: RawRecord) -> Optional[Judgement]:
        prompt = build_prompt(record.title, record.description)
        logger.debug(f"[enrichment] Analyzing job {record.external_id}: {record.title}")
        try:
            content = await self.retry_policy.run(
                lambda: self.classifier(prompt),
                retry_if=is_retryable,
                sleep=self.sleep,
                label=f"classify job {record.external_id}",
            )
        except RetriesExhaustedError as e:
            self.stats.incr("classify_failed")
            logger.error(f"[enrichment] AI API call failure for job {record.external_id}: {e.last_error}")
            return None
        except Exception as e:
            self.stats.incr("classify_failed")
            logger.error(f"[enrichment] AI API call rejected for job {record.external_id}: {e}")
            return None

        try:
            return decode_judgement(content)
        except DecodeError as e:
            self.stats.incr("decode_failed")
            logger.error(f"[enrichment] Failed to parse AI response for job {record.external_id}: {e}")
            logger.error(f"[enrichment] Raw AI content for job {record.external_id}: {e.payload}")
            return None

    def _unexpected_error(self, record: RawRecord, error: Exception) -> None:
        self.stats.incr("classify_failed")
