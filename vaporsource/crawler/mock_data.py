"""Static postings used when USE_MOCK_JOBS replaces the scraper."""
from vaporsource.models import RawRecord

MOCK_JOBS = [
    RawRecord(
        external_id="mock-1",
        title="Senior Backend Engineer",
        company="Umbrella Corp",
        location="Seattle, WA",
        description=(
            "Build and maintain backend services in Python and Go. "
            "Design REST APIs backed by PostgreSQL, deploy with Docker and Kubernetes. "
            "5+ years of professional experience and a Bachelor's degree in CS required."
        ),
        salary="$140,000 - $170,000",
        posted_date="2025-11-16",
        source_url="https://example.com/jobs/mock-1",
    ),
    RawRecord(
        external_id="mock-2",
        title="Frontend Developer",
        company="Initech",
        location="Remote",
        description=(
            "Ship React and TypeScript features for a customer dashboard. "
            "Work with designers on accessibility. 2 years of experience preferred."
        ),
        salary="Not specified",
        posted_date="2025-11-17",
        source_url="https://example.com/jobs/mock-2",
    ),
    RawRecord(
        external_id="mock-3",
        title="Warehouse Associate",
        company="Acme Logistics",
        location="Tacoma, WA",
        description="Pick, pack and ship orders. Forklift certification a plus.",
        salary="$21.50 per hour",
        posted_date="2025-11-17",
        source_url="https://example.com/jobs/mock-3",
    ),
]
