"""
Tests for the jobs API.
"""
import pytest
from fastapi.testclient import TestClient

from vaporsource.main import create_app
from vaporsource.pipeline.db_insert import InMemoryJobStore


@pytest.fixture
def client():
    return TestClient(create_app(InMemoryJobStore()))


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.text == "OK"


def test_create_job_returns_title(client, make_enriched):
    response = client.post("/jobs", json=make_enriched("1").to_payload())

    assert response.status_code == 201
    assert response.json() == {"title": "Software Engineer 1"}


def test_duplicate_job_id_conflicts(client, make_enriched):
    payload = make_enriched("1").to_payload()
    client.post("/jobs", json=payload)

    response = client.post("/jobs", json=payload)

    assert response.status_code == 409


def test_invalid_payload_rejected(client, make_enriched):
    payload = make_enriched("1").to_payload()
    payload["minYearsExperience"] = 99
    del payload["title"]

    response = client.post("/jobs", json=payload)

    assert response.status_code == 422


def test_get_job_by_id(client, make_enriched):
    client.post("/jobs", json=make_enriched("1").to_payload())

    response = client.get("/jobs/1")

    assert response.status_code == 200
    body = response.json()
    assert body["jobId"] == "1"
    assert body["languages"] == ["Go", "Python"]
    assert body["deadlineDate"] == "ongoing"


def test_get_missing_job(client):
    assert client.get("/jobs/nope").status_code == 404


def test_list_jobs_by_date(client, make_enriched):
    for job_id, posted in (("1", "2025-11-14"), ("2", "2025-11-15"), ("3", "2025-11-16")):
        client.post("/jobs", json=make_enriched(job_id, posted_date=posted).to_payload())

    by_day = client.get("/jobs", params={"posted_date": "2025-11-15"}).json()
    by_range = client.get("/jobs", params={"start_date": "2025-11-15", "end_date": "2025-11-16"}).json()
    everything = client.get("/jobs").json()

    assert [job["jobId"] for job in by_day] == ["2"]
    assert [job["jobId"] for job in by_range] == ["2", "3"]
    assert len(everything) == 3


@pytest.mark.parametrize("params,status", [
    ({"posted_date": "11/15/2025"}, 422),
    ({"posted_date": "2025-11-15", "start_date": "2025-11-01"}, 400),
    ({"start_date": "2025-11-20", "end_date": "2025-11-01"}, 400),
])
def test_list_jobs_rejects_bad_filters(client, params, status):
    assert client.get("/jobs", params=params).status_code == status


def test_metrics_exposed(client):
    response = client.get("/metrics")

    assert response.status_code == 200
    assert "vaporsource_records_total" in response.text
