"""
Jobs API.

Receives enriched postings from the ingestion run (HTTPJobStore posts here)
and serves them back by id or posted date. Backed by PostgreSQL when
DATABASE_URL is set, otherwise by process memory.
"""
import logging
import os
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Query, Response
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from vaporsource.models import EnrichedRecord
from vaporsource.pipeline.db_insert import InMemoryJobStore, PostgresJobStore
from vaporsource.pipeline.sink import StoreOutcome

load_dotenv()

logger = logging.getLogger(__name__)

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


def store_from_env():
    database_url = os.getenv("DATABASE_URL")
    if database_url:
        logger.info("[api] Using PostgreSQL job store")
        return PostgresJobStore(database_url, jobs_table=os.getenv("JOBS_TABLE"))
    logger.info("[api] DATABASE_URL not set, using in-memory job store")
    return InMemoryJobStore()


def create_app(store=None) -> FastAPI:
    app = FastAPI(title="vapor-source jobs API")
    app.state.store = store if store is not None else store_from_env()

    @app.get("/health", response_class=PlainTextResponse)
    async def health():
        return "OK"

    @app.get("/metrics")
    async def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.post("/jobs", status_code=201)
    async def create_job(job: EnrichedRecord):
        outcome = await app.state.store.store(job)
        if outcome is StoreOutcome.DUPLICATE:
            raise HTTPException(status_code=409, detail=f"Job with jobId '{job.external_id}' already exists")
        if outcome is StoreOutcome.CLIENT_ERROR:
            raise HTTPException(status_code=422, detail="Job rejected by store")
        if outcome is StoreOutcome.SERVER_ERROR:
            raise HTTPException(status_code=500, detail="Failed to store job")
        logger.info(f"[api] Stored job {job.external_id}: {job.title}")
        return {"title": job.title}

    @app.get("/jobs")
    async def list_jobs(
        posted_date: Optional[str] = Query(None, pattern=DATE_PATTERN),
        start_date: Optional[str] = Query(None, pattern=DATE_PATTERN),
        end_date: Optional[str] = Query(None, pattern=DATE_PATTERN),
    ):
        if posted_date and (start_date or end_date):
            raise HTTPException(status_code=400, detail="Use either posted_date or start_date/end_date, not both")
        if start_date and end_date and start_date > end_date:
            raise HTTPException(status_code=400, detail="start_date must not be after end_date")
        records = await app.state.store.list(posted_date=posted_date, start_date=start_date, end_date=end_date)
        return [record.to_payload() for record in records]

    @app.get("/jobs/{job_id}")
    async def get_job(job_id: str):
        record = await app.state.store.get(job_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Job not found")
        return record.to_payload()

    return app


app = create_app()
