"""Store that posts enriched records to the jobs API over HTTP."""
import logging
from typing import Optional

import httpx

from vaporsource.models import EnrichedRecord
from vaporsource.pipeline.sink import StoreOutcome

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class HTTPJobStore:
    """
    POSTs each record as JSON to `{api_url}/jobs`.

    201 (or 200) is a creation, 409 a duplicate, any other 4xx a rejected
    record; 5xx and transport failures are server errors.
    """

    def __init__(self, api_url: str, timeout: float = DEFAULT_TIMEOUT,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.endpoint = f"{api_url.rstrip('/')}/jobs"
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(timeout), transport=transport)

    async def store(self, record: EnrichedRecord) -> StoreOutcome:
        try:
            response = await self._client.post(self.endpoint, json=record.to_payload())
        except httpx.HTTPError as e:
            logger.error(f"[http_store] Error posting job {record.external_id} to {self.endpoint}: {e}")
            return StoreOutcome.SERVER_ERROR

        status = response.status_code
        if status in (200, 201):
            return StoreOutcome.CREATED
        if status == 409:
            return StoreOutcome.DUPLICATE
        if 400 <= status < 500:
            logger.error(f"[http_store] HTTP {status} for job {record.external_id}: {response.text[:200]}")
            return StoreOutcome.CLIENT_ERROR
        logger.error(f"[http_store] HTTP {status} for job {record.external_id}")
        return StoreOutcome.SERVER_ERROR

    async def aclose(self) -> None:
        await self._client.aclose()
