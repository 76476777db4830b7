"""
Runtime configuration.

Everything comes from environment variables (a local .env file is loaded by
the CLI and the API). Missing credentials are the one startup failure that
aborts a run before any work is done.
"""
import os
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Mapping, Optional

from vaporsource.core.retry import RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_QUERY = "software engineer"
DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_OPENAI_MODEL = "gpt-4.1-nano"
DEFAULT_SCRAPER_BASE_URL = "https://seeker.worksourcewa.com/"
DEFAULT_JOBS_API_URL = "http://localhost:8080"
DEFAULT_JOB_IDS_PATH = "data/job_ids.txt"

STORE_BACKENDS = ("http", "postgres", "memory")


class ConfigurationError(Exception):
    """Startup configuration is missing or invalid."""


def _get_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    value = env.get(key)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("true", "1", "yes")


def _get_int(env: Mapping[str, str], key: str, default: int) -> int:
    value = env.get(key)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"[config] {key}={value!r} is not an integer, using default {default}")
        return default


def _get_float(env: Mapping[str, str], key: str, default: float) -> float:
    value = env.get(key)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"[config] {key}={value!r} is not a number, using default {default}")
        return default


@dataclass(frozen=True)
class Settings:
    query: str = DEFAULT_QUERY
    debug_output: bool = False
    api_dry_run: bool = False
    use_mock_jobs: bool = False

    openai_api_key: str = ""
    openai_base_url: str = DEFAULT_OPENAI_BASE_URL
    openai_model: str = DEFAULT_OPENAI_MODEL

    scraper_max_pages: int = 2
    scraper_base_url: str = DEFAULT_SCRAPER_BASE_URL
    scraper_max_concurrent_requests: int = 25
    parser_max_concurrent_tasks: int = 25

    retry: RetryPolicy = field(default_factory=RetryPolicy)
    http_timeout: float = 30.0

    store_backend: str = "http"
    jobs_api_url: str = DEFAULT_JOBS_API_URL
    database_url: Optional[str] = None
    jobs_table: str = "jobs"

    use_job_id_file: bool = False
    job_ids_path: Path = Path(DEFAULT_JOB_IDS_PATH)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from the environment and validate them."""
        env = os.environ if environ is None else environ

        try:
            retry = RetryPolicy(
                max_attempts=_get_int(env, "RETRY_MAX_ATTEMPTS", 10),
                initial_delay=_get_float(env, "RETRY_INITIAL_DELAY", 1.0),
                backoff_factor=_get_float(env, "RETRY_BACKOFF_FACTOR", 2.0),
                jitter_factor=_get_float(env, "RETRY_JITTER_FACTOR", 0.1),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid retry configuration: {e}") from e

        settings = cls(
            query=env.get("QUERY") or DEFAULT_QUERY,
            debug_output=_get_bool(env, "DEBUG_OUTPUT", False),
            api_dry_run=_get_bool(env, "API_DRY_RUN", False),
            use_mock_jobs=_get_bool(env, "USE_MOCK_JOBS", False),
            openai_api_key=(env.get("OPENAI_API_KEY") or "").strip(),
            openai_base_url=env.get("OPENAI_BASE_URL") or DEFAULT_OPENAI_BASE_URL,
            openai_model=env.get("OPENAI_MODEL") or DEFAULT_OPENAI_MODEL,
            scraper_max_pages=_get_int(env, "SCRAPER_MAX_PAGES", 2),
            scraper_base_url=env.get("SCRAPER_BASE_URL") or DEFAULT_SCRAPER_BASE_URL,
            scraper_max_concurrent_requests=_get_int(env, "SCRAPER_MAX_CONCURRENT_REQUESTS", 25),
            parser_max_concurrent_tasks=_get_int(env, "PARSER_MAX_CONCURRENT_TASKS", 25),
            retry=retry,
            http_timeout=_get_float(env, "HTTP_TIMEOUT", 30.0),
            store_backend=(env.get("STORE_BACKEND") or "http").strip().lower(),
            jobs_api_url=env.get("JOBS_API_URL") or DEFAULT_JOBS_API_URL,
            database_url=env.get("DATABASE_URL") or None,
            jobs_table=env.get("JOBS_TABLE") or "jobs",
            use_job_id_file=_get_bool(env, "USE_JOB_ID_FILE", False),
            job_ids_path=Path(env.get("JOB_IDS_PATH") or DEFAULT_JOB_IDS_PATH),
        )
        settings.validate()
        return settings

    def with_overrides(self, **changes) -> "Settings":
        """Copy with CLI overrides applied (None values are ignored)."""
        updated = replace(self, **{k: v for k, v in changes.items() if v is not None})
        updated.validate()
        return updated

    def validate(self) -> None:
        """
        Raises:
            ConfigurationError: when a required value is missing or a limit is invalid
        """
        if not self.api_dry_run and not self.openai_api_key:
            raise ConfigurationError("OPENAI_API_KEY must be set unless API_DRY_RUN is true")
        if self.scraper_max_pages < 0:
            raise ConfigurationError(f"SCRAPER_MAX_PAGES must be >= 0, got {self.scraper_max_pages}")
        if self.scraper_max_concurrent_requests < 1:
            raise ConfigurationError(
                f"SCRAPER_MAX_CONCURRENT_REQUESTS must be >= 1, got {self.scraper_max_concurrent_requests}"
            )
        if self.parser_max_concurrent_tasks < 1:
            raise ConfigurationError(
                f"PARSER_MAX_CONCURRENT_TASKS must be >= 1, got {self.parser_max_concurrent_tasks}"
            )
        if self.store_backend not in STORE_BACKENDS:
            raise ConfigurationError(
                f"STORE_BACKEND must be one of {', '.join(STORE_BACKENDS)}, got {self.store_backend!r}"
            )
        if self.store_backend == "postgres" and not self.database_url and not self.api_dry_run:
            raise ConfigurationError("DATABASE_URL must be set when STORE_BACKEND=postgres")
