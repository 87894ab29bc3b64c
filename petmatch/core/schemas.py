"""Core data models for the pet match engine."""

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ReportKind(str, Enum):
    LOST = "lost"
    FOUND = "found"

    @property
    def opposite(self) -> "ReportKind":
        return ReportKind.FOUND if self is ReportKind.LOST else ReportKind.LOST


class ReportStatus(str, Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"


class Species(str, Enum):
    DOG = "dog"
    CAT = "cat"
    OTHER = "other"


def _as_utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC, convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Coordinates(BaseModel):
    """A WGS84 latitude/longitude pair."""

    model_config = ConfigDict(frozen=True)

    lat: float = Field(ge=-90.0, le=90.0)
    lng: float = Field(ge=-180.0, le=180.0)


class Report(BaseModel):
    """A lost or found pet posting.

    Frozen: kind and species never change after creation. Status changes go
    through the store (owner only), which writes a new copy.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    kind: ReportKind
    status: ReportStatus = ReportStatus.ACTIVE
    species: Species
    pet_name: str = ""
    breed: str = ""
    color: str = ""
    special_marks: str = ""
    has_collar: bool = False
    collar_color: str = ""
    is_chipped: bool | None = None
    kept_by_finder: bool | None = None
    description: str = ""
    lat: float | None = Field(default=None, ge=-90.0, le=90.0)
    lng: float | None = Field(default=None, ge=-180.0, le=180.0)
    location: str = ""
    posted_at: datetime
    lost_at: datetime | None = None
    photos: list[str] = Field(default_factory=list)
    contact: str = ""

    @field_validator("posted_at")
    @classmethod
    def posted_at_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)

    @field_validator("lost_at")
    @classmethod
    def lost_at_utc(cls, v: datetime | None) -> datetime | None:
        return _as_utc(v) if v is not None else None

    @model_validator(mode="after")
    def check_consistency(self) -> "Report":
        if (self.lat is None) != (self.lng is None):
            msg = "lat and lng must be given together"
            raise ValueError(msg)
        if self.lost_at is not None:
            if self.kind is not ReportKind.LOST:
                msg = "lost_at is only allowed on lost reports"
                raise ValueError(msg)
            if self.lost_at > self.posted_at:
                msg = "lost_at must not be later than posted_at"
                raise ValueError(msg)
        return self

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None

    @property
    def coordinates(self) -> Coordinates | None:
        if self.lat is None or self.lng is None:
            return None
        return Coordinates(lat=self.lat, lng=self.lng)

    @property
    def primary_photo(self) -> str:
        return self.photos[0] if self.photos else ""

    @property
    def reference_date(self) -> datetime:
        """Date that temporal windows are measured from.

        For lost reports this is when the animal went missing (falling back to
        the posting time); for found reports it is the posting time.
        """
        if self.kind is ReportKind.LOST and self.lost_at is not None:
            return self.lost_at
        return self.posted_at


class ScoredCandidate(BaseModel):
    """Wrapper that pairs a frozen Report with its heuristic similarity score."""

    model_config = ConfigDict(frozen=True)

    report: Report
    score: float = Field(default=0.0, ge=0.0)


class MatchResult(BaseModel):
    """One verdict from the visual comparator."""

    model_config = ConfigDict(frozen=True)

    id: str
    confidence: float = Field(ge=0.0, le=100.0)
    reasoning: str = ""


class Notification(BaseModel):
    """A surfaced match, addressed to the owner of the lost report."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    user_id: str
    lost_report_id: str
    lost_pet_name: str
    lost_pet_photo: str = ""
    found_report_id: str
    found_pet_location: str = ""
    found_pet_photo: str = ""
    confidence: float = Field(ge=0.0, le=100.0)
    reasoning: str = ""
    created_at: datetime
    read: bool = False

    @field_validator("created_at")
    @classmethod
    def created_at_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)

    @property
    def pair_key(self) -> tuple[str, str, str]:
        """Identity of the match pair: (recipient, lost report, found report)."""
        return (self.user_id, self.lost_report_id, self.found_report_id)
