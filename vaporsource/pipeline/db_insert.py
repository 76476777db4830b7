"""
Job stores backed by PostgreSQL and by process memory.

Both stores reject a record whose external id is already present and report
it as a DUPLICATE. They also answer the read queries the jobs API serves:
one record by id, or every record posted on a date or within a date range.
Posted dates are stored as yyyy-MM-dd text, so range filters compare
lexicographically.
"""
import asyncio
import logging
import re
import threading
from typing import Any, Dict, List, Optional

import psycopg2
from psycopg2.extras import RealDictCursor

from vaporsource.models import EnrichedRecord
from vaporsource.pipeline.sink import StoreOutcome

logger = logging.getLogger(__name__)

DEFAULT_JOBS_TABLE = "jobs"

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Field name on EnrichedRecord -> column in the jobs table
FIELD_MAP = {
    "external_id": "job_id",
    "title": "title",
    "company": "company",
    "location": "location",
    "description": "description",
    "salary": "salary",
    "posted_date": "posted_date",
    "source_url": "url",
    "expires_date": "expires_date",
    "summary": "parsed_description",
    "min_degree": "min_degree",
    "min_years_experience": "min_years_experience",
    "modality": "modality",
    "domain": "domain",
    "languages": "languages",
    "technologies": "technologies",
    "deadline_date": "deadline_date",
}

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS {table} (
    job_id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    company TEXT NOT NULL,
    location TEXT NOT NULL,
    description TEXT NOT NULL,
    salary TEXT NOT NULL,
    posted_date TEXT NOT NULL,
    url TEXT NOT NULL,
    expires_date TEXT,
    parsed_description TEXT NOT NULL,
    min_degree TEXT NOT NULL,
    min_years_experience INTEGER NOT NULL,
    modality TEXT NOT NULL,
    domain TEXT NOT NULL,
    languages TEXT[] NOT NULL DEFAULT '{{}}',
    technologies TEXT[] NOT NULL DEFAULT '{{}}',
    deadline_date TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS {table}_posted_date_idx ON {table} (posted_date);
"""


def record_to_row(record: EnrichedRecord) -> Dict[str, Any]:
    """Column values for one record; enums are stored by value."""
    data = record.model_dump(mode="json")
    return {column: data[field] for field, column in FIELD_MAP.items()}


def row_to_record(row: Dict[str, Any]) -> EnrichedRecord:
    values = {field: row[column] for field, column in FIELD_MAP.items()}
    values["languages"] = list(values["languages"] or [])
    values["technologies"] = list(values["technologies"] or [])
    return EnrichedRecord(**values)


def _matches(record: EnrichedRecord, posted_date: Optional[str],
             start_date: Optional[str], end_date: Optional[str]) -> bool:
    if posted_date is not None and record.posted_date != posted_date:
        return False
    if start_date is not None and record.posted_date < start_date:
        return False
    if end_date is not None and record.posted_date > end_date:
        return False
    return True


class InMemoryJobStore:
    """Dict-backed store for tests, dry runs and the API without a database."""

    def __init__(self):
        self._records: Dict[str, EnrichedRecord] = {}
        self._lock = threading.Lock()

    async def store(self, record: EnrichedRecord) -> StoreOutcome:
        with self._lock:
            if record.external_id in self._records:
                return StoreOutcome.DUPLICATE
            self._records[record.external_id] = record
        return StoreOutcome.CREATED

    async def get(self, external_id: str) -> Optional[EnrichedRecord]:
        with self._lock:
            return self._records.get(external_id)

    async def list(self, posted_date: Optional[str] = None, start_date: Optional[str] = None,
                   end_date: Optional[str] = None) -> List[EnrichedRecord]:
        with self._lock:
            records = list(self._records.values())
        matching = [r for r in records if _matches(r, posted_date, start_date, end_date)]
        return sorted(matching, key=lambda r: (r.posted_date, r.external_id))

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class PostgresJobStore:
    """
    Stores records in a PostgreSQL table.

    psycopg2 is blocking, so every query runs in a worker thread with its own
    short-lived connection.
    """

    def __init__(self, db_url: str, jobs_table: Optional[str] = None):
        """
        Args:
            db_url: PostgreSQL connection string
            jobs_table: Table name (default: 'jobs')
        """
        self.db_url = db_url
        self.jobs_table = jobs_table or DEFAULT_JOBS_TABLE
        if not _IDENTIFIER_RE.match(self.jobs_table):
            raise ValueError(f"Invalid table name: {self.jobs_table!r}")
        self._schema_ready = False
        logger.info(f"[db_insert] PostgresJobStore initialized: table={self.jobs_table}")

    def _get_db_conn(self):
        try:
            return psycopg2.connect(self.db_url, connect_timeout=5)
        except Exception as e:
            logger.error(f"[db_insert] Failed to connect to database: {e}")
            raise

    def ensure_schema(self) -> None:
        """Create the jobs table and its index when missing."""
        conn = self._get_db_conn()
        try:
            with conn.cursor() as cur:
                cur.execute(SCHEMA_SQL.format(table=self.jobs_table))
            conn.commit()
            self._schema_ready = True
            logger.debug(f"[db_insert] Ensured table {self.jobs_table} exists")
        finally:
            conn.close()

    def insert_job(self, record: EnrichedRecord) -> StoreOutcome:
        """Insert one record; an existing job_id leaves the row untouched."""
        if not self._schema_ready:
            self.ensure_schema()

        row = record_to_row(record)
        columns = list(row.keys())
        placeholders = ", ".join(["%s"] * len(columns))
        sql = (
            f"INSERT INTO {self.jobs_table} ({', '.join(columns)}) "
            f"VALUES ({placeholders}) ON CONFLICT (job_id) DO NOTHING"
        )

        conn = None
        try:
            conn = self._get_db_conn()
            with conn.cursor() as cur:
                cur.execute(sql, [row[c] for c in columns])
                inserted = cur.rowcount
            conn.commit()
        except psycopg2.DataError as e:
            if conn:
                conn.rollback()
            logger.error(f"[db_insert] Rejected job {record.external_id}: {e}")
            return StoreOutcome.CLIENT_ERROR
        except psycopg2.Error as e:
            if conn:
                conn.rollback()
            logger.error(f"[db_insert] Failed to insert job {record.external_id}: {e}")
            return StoreOutcome.SERVER_ERROR
        finally:
            if conn:
                conn.close()

        if inserted == 0:
            logger.debug(f"[db_insert] Job {record.external_id} already in {self.jobs_table}")
            return StoreOutcome.DUPLICATE
        logger.debug(f"[db_insert] Inserted job {record.external_id} into {self.jobs_table}")
        return StoreOutcome.CREATED

    def fetch_job(self, external_id: str) -> Optional[EnrichedRecord]:
        conn = self._get_db_conn()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(f"SELECT * FROM {self.jobs_table} WHERE job_id = %s", (external_id,))
                row = cur.fetchone()
        finally:
            conn.close()
        return row_to_record(row) if row else None

    def fetch_jobs(self, posted_date: Optional[str] = None, start_date: Optional[str] = None,
                   end_date: Optional[str] = None) -> List[EnrichedRecord]:
        conditions = []
        params: List[str] = []
        if posted_date is not None:
            conditions.append("posted_date = %s")
            params.append(posted_date)
        if start_date is not None:
            conditions.append("posted_date >= %s")
            params.append(start_date)
        if end_date is not None:
            conditions.append("posted_date <= %s")
            params.append(end_date)
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        conn = self._get_db_conn()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    f"SELECT * FROM {self.jobs_table} {where} ORDER BY posted_date, job_id",
                    params,
                )
                rows = cur.fetchall()
        finally:
            conn.close()
        return [row_to_record(row) for row in rows]

    async def store(self, record: EnrichedRecord) -> StoreOutcome:
        return await asyncio.to_thread(self.insert_job, record)

    async def get(self, external_id: str) -> Optional[EnrichedRecord]:
        return await asyncio.to_thread(self.fetch_job, external_id)

    async def list(self, posted_date: Optional[str] = None, start_date: Optional[str] = None,
                   end_date: Optional[str] = None) -> List[EnrichedRecord]:
        return await asyncio.to_thread(self.fetch_jobs, posted_date, start_date, end_date)
