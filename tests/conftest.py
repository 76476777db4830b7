"""Shared fixtures for the pipeline tests."""
import json

import pytest

from vaporsource.models import EnrichedRecord, Judgement, RawRecord


@pytest.fixture
def make_raw():
    """Factory for RawRecords with overridable fields."""
    def _make(external_id="100", **overrides):
        data = {
            "external_id": external_id,
            "title": f"Software Engineer {external_id}",
            "company": "Example Co",
            "location": "Seattle, WA",
            "description": "Build services in Python.",
            "salary": "Not specified",
            "posted_date": "2025-11-16",
            "source_url": f"https://board.example/jobsearch/ViewJobDetails.aspx?JobID={external_id}",
        }
        data.update(overrides)
        return RawRecord(**data)
    return _make


@pytest.fixture
def judgement_json():
    """Factory for classifier response content."""
    def _make(**overrides):
        data = {
            "ParsedDescription": "Builds backend APIs",
            "DeadlineDate": "Ongoing until requisition is closed",
            "MinDegree": "Bachelor's",
            "MinYearsExperience": 3,
            "Modality": "Remote",
            "Domain": "Backend",
            "Languages": ["Python", "Go"],
            "Technologies": ["Docker"],
            "IsSoftwareEngineerRelated": True,
        }
        data.update(overrides)
        return json.dumps(data)
    return _make


@pytest.fixture
def make_enriched(make_raw, judgement_json):
    def _make(external_id="100", **raw_overrides):
        judgement = Judgement.model_validate(json.loads(judgement_json()))
        return EnrichedRecord.merge(make_raw(external_id, **raw_overrides), judgement)
    return _make


@pytest.fixture
def sleeps():
    """Recorded backoff delays; pass `sleeps.sleep` as the injectable sleep."""
    class Recorder(list):
        async def sleep(self, delay):
            self.append(delay)
    return Recorder()
