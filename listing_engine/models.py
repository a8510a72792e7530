"""Data models for the listing engine.

Jobs and internships arrive from the backend in two slightly different shapes.
Everything past the aggregation boundary works on the single normalized
`Opportunity` record defined here; loose payload shapes (requirements as JSON
text, locations as either text or a record) never leak further.

This file uses Pydantic v2.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OpportunityKind(str, Enum):
    JOB = "Job"
    INTERNSHIP = "Internship"


ListingStatus = Literal["active", "paused", "closed", "expired"]


class StructuredLocation(BaseModel):
    """Location stored as a record rather than free text."""

    city: str = ""
    area: str = ""
    pincode: Optional[str] = None
    street_address: Optional[str] = None

    def parts(self) -> List[str]:
        """Searchable components, in display order."""
        return [p for p in (self.city, self.area, self.pincode) if p]


class Opportunity(BaseModel):
    """A normalized job or internship posting.

    `company` and `company_logo_url` are a snapshot of the related company at
    fetch time and may be stale. `(kind, id)` is the composite key used for any
    cross-referencing, favorites included.
    """

    id: str = Field(..., description="Backend identifier, unique per kind.")
    kind: OpportunityKind

    title: str = ""
    description: str = ""

    company: str = "Unknown Company"
    company_logo_url: str = ""

    location: Union[StructuredLocation, str] = ""
    category: str = Field(default="", description="Job type or internship type.")
    compensation: str = "Salary not specified"
    posted_at: Optional[datetime] = None

    requirements: List[str] = Field(default_factory=list)
    experience_level: str = ""
    status: ListingStatus = "active"
    duration_months: Optional[float] = None

    raw: Dict[str, Any] = Field(default_factory=dict, description="Original payload.")

    @field_validator("posted_at")
    @classmethod
    def assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # Naive timestamps are UTC so they compare with aware ones.
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def key(self) -> Tuple[OpportunityKind, str]:
        return (self.kind, self.id)


class FavoriteRelation(BaseModel):
    """A persisted (user, opportunity) saved link."""

    user_id: str
    opportunity_id: str
    kind: OpportunityKind


class FilterState(BaseModel):
    """Selected filter values; an empty string means "no constraint".

    Field aliases accept the camelCase keys the web front end sends, so a
    filter dict can be passed straight through `FilterState.model_validate`.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str = Field(default="", alias="jobType")
    location: str = ""
    company: str = ""
    skill: str = ""
    experience: str = Field(default="", alias="experienceLevel")
    salary: str = Field(default="", alias="salaryRange")
    remote: str = Field(default="", alias="remoteWork")
    duration: str = ""
    posted: str = Field(default="", alias="postedDate")
    industry: str = ""
    search: str = ""
    sort: str = ""

    def active(self) -> Dict[str, str]:
        """Non-empty constraints keyed by field name (sort excluded)."""
        values = self.model_dump(exclude={"sort"})
        return {k: v.strip() for k, v in values.items() if v and v.strip()}

    def is_empty(self) -> bool:
        return not self.active() and not self.sort.strip()
