"""
Job record models shared by the scraper, the enrichment stage and the stores.

RawRecord is what the scraper produces, Judgement is the classifier's verdict
and EnrichedRecord is the merge of both that gets stored. Wire names
(camelCase) are used as aliases so the same models serialize to the jobs API.
"""
from enum import Enum
from typing import List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_validator

ONGOING_DEADLINE = "ongoing"


class Degree(str, Enum):
    """Minimum degree required for a role"""
    BACHELORS = "Bachelor's"
    MASTERS = "Master's"
    PHD = "Ph.D"
    UNSPECIFIED = "Unspecified"


class Modality(str, Enum):
    """Work arrangement"""
    REMOTE = "Remote"
    HYBRID = "Hybrid"
    IN_OFFICE = "In-Office"


class Domain(str, Enum):
    """Technical domain of a posting"""
    BACKEND = "Backend"
    FULL_STACK = "Full-Stack"
    AI_ML = "AI/ML"
    DATA = "Data"
    QA = "QA"
    FRONT_END = "Front-End"
    SECURITY = "Security"
    DEVOPS = "DevOps"
    MOBILE = "Mobile"
    SITE_RELIABILITY = "Site Reliability"
    NETWORKING = "Networking"
    EMBEDDED_SYSTEMS = "Embedded Systems"
    GAMING = "Gaming"
    FINANCIAL = "Financial"
    OTHER = "Other"


class RawRecord(BaseModel):
    """One scraped posting before enrichment."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    external_id: str = Field(alias="jobId", min_length=1)
    title: str
    company: str
    location: str
    description: str
    salary: str
    posted_date: str = Field(alias="postedDate")
    source_url: str = Field(alias="url")
    expires_date: Optional[str] = Field(default=None, alias="expiresDate")


class Judgement(BaseModel):
    """
    Structured verdict returned by the classifier.

    Field aliases are the keys of the classifier's JSON schema. Unknown keys,
    out-of-range experience and values outside the enums are rejected so a
    malformed response never reaches the sink.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    summary: str = Field(alias="ParsedDescription")
    min_degree: Degree = Field(alias="MinDegree")
    min_years_experience: int = Field(alias="MinYearsExperience", ge=0, le=25)
    modality: Modality = Field(alias="Modality")
    domain: Domain = Field(alias="Domain")
    languages: Set[str] = Field(alias="Languages")
    technologies: Set[str] = Field(alias="Technologies")
    deadline_date: str = Field(alias="DeadlineDate")
    is_relevant: bool = Field(alias="IsSoftwareEngineerRelated")

    @field_validator("deadline_date")
    @classmethod
    def _normalize_deadline(cls, value: str) -> str:
        value = value.strip()
        if not value or value.lower().startswith(ONGOING_DEADLINE):
            return ONGOING_DEADLINE
        return value

    @field_validator("languages", "technologies")
    @classmethod
    def _drop_blank_names(cls, values: Set[str]) -> Set[str]:
        return {v.strip() for v in values if v and v.strip()}


class EnrichedRecord(RawRecord):
    """RawRecord plus the classifier's judgement; the unit handed to a store."""

    summary: str = Field(alias="parsedDescription")
    min_degree: Degree = Field(alias="minDegree")
    min_years_experience: int = Field(alias="minYearsExperience", ge=0, le=25)
    modality: Modality
    domain: Domain
    languages: List[str] = Field(default_factory=list)
    technologies: List[str] = Field(default_factory=list)
    deadline_date: str = Field(default=ONGOING_DEADLINE, alias="deadlineDate")

    @classmethod
    def merge(cls, raw: RawRecord, judgement: Judgement) -> "EnrichedRecord":
        """Combine a scraped record with its judgement."""
        return cls(
            **raw.model_dump(),
            summary=judgement.summary,
            min_degree=judgement.min_degree,
            min_years_experience=judgement.min_years_experience,
            modality=judgement.modality,
            domain=judgement.domain,
            languages=sorted(judgement.languages),
            technologies=sorted(judgement.technologies),
            deadline_date=judgement.deadline_date,
        )

    def to_payload(self) -> dict:
        """Wire representation used by the jobs API and the stores."""
        return self.model_dump(mode="json", by_alias=True)
