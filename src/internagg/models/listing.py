"""Canonical listing data models."""

from datetime import datetime, timezone
from enum import Enum
from math import ceil

from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class LocationType(str, Enum):
    """Where the work happens."""

    REMOTE = "remote"
    ONSITE = "onsite"
    HYBRID = "hybrid"


class ListingType(str, Enum):
    """Kind of engagement offered."""

    INTERNSHIP = "internship"
    PROJECT = "project"
    FULL_TIME = "full-time"
    PART_TIME = "part-time"


class StipendPeriod(str, Enum):
    """Period a stipend amount is paid over."""

    MONTH = "month"
    WEEK = "week"
    YEAR = "year"
    HOURLY = "hourly"
    TOTAL = "total"


class Location(BaseModel):
    city: str | None = None
    state: str | None = None
    country: str = "India"
    type: LocationType = LocationType.ONSITE

    model_config = {"str_strip_whitespace": True}


class Stipend(BaseModel):
    amount: int = Field(default=0, ge=0, description="Leading numeric amount, 0 if unspecified")
    currency: str = "INR"
    period: StipendPeriod = StipendPeriod.MONTH


class Requirements(BaseModel):
    skills: list[str] = Field(default_factory=list)
    experience: str | None = None
    education: str | None = None


class RawListing(BaseModel):
    """A listing as normalized by a source adapter.

    Carries the canonical fields minus the ones assigned during aggregation
    (category, activity flag, sync timestamp). ``id`` is the provider-supplied
    identifier when the provider exposes one.
    """

    source: str = Field(..., description="Adapter name (linkedin, indeed, internshala)")
    id: str | None = Field(default=None, description="Provider-supplied identifier")

    title: str = Field(..., min_length=1)
    company: str = Field(..., min_length=1)
    company_logo: str | None = None
    description: str = ""

    location: Location = Field(default_factory=Location)
    type: ListingType = ListingType.INTERNSHIP
    duration: str = "Not specified"
    stipend: Stipend = Field(default_factory=Stipend)
    requirements: Requirements = Field(default_factory=Requirements)

    apply_url: str = Field(..., min_length=1)
    application_deadline: datetime | None = None
    posted_date: datetime = Field(default_factory=utcnow)

    model_config = {
        "str_strip_whitespace": True,
    }

    @field_validator("duration", mode="before")
    @classmethod
    def _default_duration(cls, value: str | None) -> str:
        return value or "Not specified"


class ExternalListing(RawListing):
    """Persisted external listing, unique per (source, external_id)."""

    external_id: str = Field(..., min_length=1)
    category: str = "Other"
    last_synced_at: datetime = Field(default_factory=utcnow)
    is_active: bool = True
    is_external: bool = Field(
        default=True,
        description="Always true; lets callers tell external rows from native ones",
    )


class ListingFilters(BaseModel):
    """Filters accepted by the listing store read path."""

    source: str | None = None
    category: str | None = None
    search: str | None = None
    location: str | None = None
    remote: bool = False

    model_config = {"str_strip_whitespace": True}

    def cache_token(self) -> str:
        """Stable string form used in response cache keys."""
        return self.model_dump_json(exclude_defaults=True)


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, pages=ceil(total / limit) if limit else 0)


class ListingPage(BaseModel):
    """One page of external listings, shaped like native listing queries."""

    data: list[ExternalListing]
    pagination: Pagination
