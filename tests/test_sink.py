"""
Tests for the sink stage and the job stores.
"""
import logging
from unittest.mock import MagicMock, patch

import httpx
import pytest

from vaporsource.crawler.scraper import records_from
from vaporsource.metrics import RunStats
from vaporsource.pipeline.db_insert import (
    FIELD_MAP,
    InMemoryJobStore,
    PostgresJobStore,
    record_to_row,
    row_to_record,
)
from vaporsource.pipeline.http_store import HTTPJobStore
from vaporsource.pipeline.sink import Poster, StoreOutcome


class ScriptedStore:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.stored = []

    async def store(self, record):
        self.stored.append(record.external_id)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class TestPoster:

    @pytest.mark.asyncio
    async def test_duplicate_counted_separately_from_failures(self, make_enriched):
        store = InMemoryJobStore()
        stats = RunStats()
        poster = Poster(store, stats=stats)

        await poster.post(records_from([make_enriched("1"), make_enriched("1"), make_enriched("2")]))

        assert stats.stored == 2
        assert stats.duplicate == 1
        assert stats.failed == 0
        assert len(store) == 2

    @pytest.mark.asyncio
    async def test_errors_dropped_and_counted(self, make_enriched):
        store = ScriptedStore([
            StoreOutcome.CLIENT_ERROR,
            StoreOutcome.SERVER_ERROR,
            RuntimeError("connection reset"),
            StoreOutcome.CREATED,
        ])
        stats = RunStats()
        poster = Poster(store, stats=stats)

        await poster.post(records_from([make_enriched(str(n)) for n in range(4)]))

        assert store.stored == ["0", "1", "2", "3"]
        assert stats.store_failed == 3
        assert stats.stored == 1

    @pytest.mark.asyncio
    async def test_dry_run_skips_store(self, make_enriched):
        stats = RunStats()
        poster = Poster(None, dry_run=True, stats=stats)

        outcome = await poster.post_one(make_enriched("1"))

        assert outcome is StoreOutcome.CREATED
        assert stats.stored == 1

    @pytest.mark.asyncio
    async def test_log_level_follows_severity(self, make_enriched, caplog):
        store = ScriptedStore([StoreOutcome.DUPLICATE, StoreOutcome.CLIENT_ERROR, StoreOutcome.SERVER_ERROR])
        poster = Poster(store)

        with caplog.at_level(logging.DEBUG, logger="vaporsource.pipeline.sink"):
            await poster.post(records_from([make_enriched(str(n)) for n in range(3)]))

        messages = {r.levelno: r.getMessage() for r in caplog.records}
        assert "Job 0 already stored" in messages[logging.DEBUG]
        assert "rejected job 1" in messages[logging.ERROR]
        assert "failed for job 2" in messages[logging.CRITICAL]
        assert logging.INFO not in messages

    def test_store_required_without_dry_run(self):
        with pytest.raises(ValueError):
            Poster(None)


class TestInMemoryJobStore:

    @pytest.mark.asyncio
    async def test_store_get_and_list(self, make_enriched):
        store = InMemoryJobStore()
        await store.store(make_enriched("1", posted_date="2025-11-15"))
        await store.store(make_enriched("2", posted_date="2025-11-16"))
        await store.store(make_enriched("3", posted_date="2025-11-17"))

        assert (await store.get("2")).posted_date == "2025-11-16"
        assert await store.get("missing") is None
        assert [r.external_id for r in await store.list(posted_date="2025-11-16")] == ["2"]
        assert [r.external_id for r in await store.list(start_date="2025-11-16")] == ["2", "3"]
        assert [r.external_id for r in await store.list(start_date="2025-11-15", end_date="2025-11-16")] == ["1", "2"]
        assert len(await store.list()) == 3


class TestHTTPJobStore:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,expected", [
        (201, StoreOutcome.CREATED),
        (200, StoreOutcome.CREATED),
        (409, StoreOutcome.DUPLICATE),
        (400, StoreOutcome.CLIENT_ERROR),
        (422, StoreOutcome.CLIENT_ERROR),
        (500, StoreOutcome.SERVER_ERROR),
        (503, StoreOutcome.SERVER_ERROR),
    ])
    async def test_status_mapping(self, make_enriched, status, expected):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(status, json={})

        store = HTTPJobStore("http://api.example/", transport=httpx.MockTransport(handler))
        outcome = await store.store(make_enriched("1"))
        await store.aclose()

        assert outcome is expected
        assert str(requests[0].url) == "http://api.example/jobs"
        assert requests[0].method == "POST"

    @pytest.mark.asyncio
    async def test_transport_error_is_server_error(self, make_enriched):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        store = HTTPJobStore("http://api.example", transport=httpx.MockTransport(handler))
        outcome = await store.store(make_enriched("1"))
        await store.aclose()

        assert outcome is StoreOutcome.SERVER_ERROR

    @pytest.mark.asyncio
    async def test_payload_uses_wire_names(self, make_enriched):
        bodies = []

        def handler(request):
            bodies.append(request.read())
            return httpx.Response(201)

        store = HTTPJobStore("http://api.example", transport=httpx.MockTransport(handler))
        await store.store(make_enriched("55"))
        await store.aclose()

        body = bodies[0].decode()
        for key in ("jobId", "postedDate", "parsedDescription", "minYearsExperience", "deadlineDate"):
            assert f'"{key}"' in body


class TestPostgresJobStore:

    @pytest.fixture
    def mock_conn(self):
        with patch("vaporsource.pipeline.db_insert.psycopg2.connect") as connect:
            conn = MagicMock()
            connect.return_value = conn
            yield conn

    def test_rejects_unsafe_table_name(self):
        with pytest.raises(ValueError):
            PostgresJobStore("postgresql://test@localhost/test", jobs_table="jobs; DROP TABLE x")

    @pytest.mark.parametrize("rowcount,expected", [
        (1, StoreOutcome.CREATED),
        (0, StoreOutcome.DUPLICATE),
    ])
    def test_insert_outcome_from_rowcount(self, mock_conn, make_enriched, rowcount, expected):
        cursor = mock_conn.cursor.return_value.__enter__.return_value
        cursor.rowcount = rowcount
        store = PostgresJobStore("postgresql://test@localhost/test")

        assert store.insert_job(make_enriched("1")) is expected

        sql, params = cursor.execute.call_args[0]
        assert "ON CONFLICT (job_id) DO NOTHING" in sql
        assert params[0] == "1"
        mock_conn.commit.assert_called()

    @pytest.mark.asyncio
    async def test_store_runs_insert(self, mock_conn, make_enriched):
        mock_conn.cursor.return_value.__enter__.return_value.rowcount = 1
        store = PostgresJobStore("postgresql://test@localhost/test", jobs_table="test_jobs")

        assert await store.store(make_enriched("1")) is StoreOutcome.CREATED

    def test_fetch_jobs_builds_range_query(self, mock_conn):
        cursor = mock_conn.cursor.return_value.__enter__.return_value
        cursor.fetchall.return_value = []
        store = PostgresJobStore("postgresql://test@localhost/test")

        assert store.fetch_jobs(start_date="2025-11-01", end_date="2025-11-30") == []

        sql, params = cursor.execute.call_args[0]
        assert "posted_date >= %s AND posted_date <= %s" in sql
        assert params == ["2025-11-01", "2025-11-30"]

    def test_row_mapping(self, make_enriched):
        record = make_enriched("9")
        row = record_to_row(record)

        assert set(row) == set(FIELD_MAP.values())
        assert row["job_id"] == "9"
        assert row["min_degree"] == "Bachelor's"
        assert row_to_record(row) == record
