"""
Classification client for an OpenAI-compatible chat completions endpoint.

The request pins the response to a strict JSON schema describing a
Judgement; the message content is returned as-is and decoded by the
enrichment stage. Retrying is left to the caller: `is_retryable` tells the
retry policy which failures are worth another attempt.
"""
import json
import logging
from typing import Any, Dict, Optional

import httpx

from vaporsource.core.net import parse_retry_after
from vaporsource.models import Degree, Domain, Modality

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0

JUDGEMENT_SCHEMA: Dict[str, Any] = {
    "name": "OpenAIJobParsingResponse",
    "strict": True,
    "schema": {
        "type": "object",
        "properties": {
            "ParsedDescription": {
                "type": "string",
                "description": "A concise summary of the job role and key responsibilities",
            },
            "DeadlineDate": {
                "type": "string",
                "description": (
                    "Deadline or expiry date for the job posting. "
                    "Use 'Ongoing until requisition is closed' if not specified"
                ),
            },
            "MinDegree": {
                "type": "string",
                "enum": [d.value for d in Degree],
                "description": "Minimum degree required for the role",
            },
            "MinYearsExperience": {
                "type": "integer",
                "minimum": 0,
                "maximum": 25,
                "description": (
                    "Minimum years of professional experience required. CRITICAL RULES: "
                    "1) If job title contains 'Senior' or 'Sr.' set to at least 4 years, "
                    "2) If job title contains 'Principal', 'Staff', 'Lead', or 'Director' set to at least 7 years, "
                    "3) If job title contains 'Mid-level' set to at least 2 years, "
                    "4) Otherwise extract specific years from description, "
                    "5) If no experience mentioned and no seniority keywords, set to 0"
                ),
            },
            "Modality": {
                "type": "string",
                "enum": [m.value for m in Modality],
                "description": "Work arrangement. Default to 'In-Office' if unclear",
            },
            "Domain": {
                "type": "string",
                "enum": [d.value for d in Domain],
                "description": (
                    "Technical domain. If description focuses on server-side or "
                    "microservices development, choose 'Backend'"
                ),
            },
            "Languages": {
                "type": "array",
                "items": {"type": "string"},
                "description": (
                    "Programming languages mentioned in the job. "
                    "Only include programming languages, not spoken languages"
                ),
            },
            "Technologies": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Software tools, frameworks, databases, and technologies mentioned in the job",
            },
            "IsSoftwareEngineerRelated": {
                "type": "boolean",
                "description": "Whether the job is primarily related to software engineering",
            },
        },
        "required": [
            "ParsedDescription",
            "DeadlineDate",
            "MinDegree",
            "MinYearsExperience",
            "Modality",
            "Domain",
            "Languages",
            "Technologies",
            "IsSoftwareEngineerRelated",
        ],
        "additionalProperties": False,
    },
}

PROMPT_TEMPLATE = """You are a recruiting analyst classifying job postings for a software engineering job board.
Read the posting below and fill in every field of the response schema.
Only use information stated in the posting; do not invent technologies or requirements.

Job title: {title}

Job description:
{description}
"""


class ClassificationError(Exception):
    """The classification endpoint failed or returned an unusable response."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 retry_after: Optional[float] = None, retryable: bool = True):
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after
        self.retryable = retryable


def is_retryable(exc: BaseException) -> bool:
    """Transport errors, 429 and 5xx are retried; other client errors are not."""
    if isinstance(exc, ClassificationError):
        return exc.retryable
    return isinstance(exc, (httpx.TransportError, json.JSONDecodeError))


def build_prompt(title: str, description: str) -> str:
    return PROMPT_TEMPLATE.format(title=title, description=description)


class ClassificationClient:
    """Sends one posting per request and returns the JSON content string."""

    def __init__(
        self,
        api_key: str,
        base_url: str,
        model: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.model = model
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(timeout), transport=transport)

    def _build_payload(self, prompt: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "response_format": {"type": "json_schema", "json_schema": JUDGEMENT_SCHEMA},
        }

    async def classify(self, prompt: str) -> str:
        """
        Ask the model to classify a posting.

        Returns:
            The message content, expected to be a JSON object matching
            JUDGEMENT_SCHEMA.

        Raises:
            ClassificationError: non-2xx status, empty choices or empty content
            httpx.TransportError: network failure
        """
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        response = await self._client.post(self.base_url, headers=headers, json=self._build_payload(prompt))

        if response.status_code == 429 or response.status_code >= 500:
            logger.warning(f"[ai_service] HTTP {response.status_code} from classification API")
            raise ClassificationError(
                f"HTTP {response.status_code} from classification API",
                status_code=response.status_code,
                retry_after=parse_retry_after(response.headers.get("Retry-After")),
            )
        if response.status_code >= 400:
            logger.error(f"[ai_service] HTTP {response.status_code} client error: {response.text[:200]}")
            raise ClassificationError(
                f"HTTP {response.status_code} from classification API",
                status_code=response.status_code,
                retryable=False,
            )

        data = response.json()
        choices = data.get("choices") or []
        if not choices:
            raise ClassificationError("Classification response has no choices")
        content = (choices[0].get("message") or {}).get("content")
        if not content:
            raise ClassificationError("Empty response content from classification API")
        return content

    async def aclose(self) -> None:
        await self._client.aclose()
