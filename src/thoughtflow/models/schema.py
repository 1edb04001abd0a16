"""Data models for ThoughtFlow."""

import datetime
import random
import re
from dataclasses import dataclass, field
from datetime import timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, Field, field_validator

# Display colors are stored as "#rrggbb"
TAG_COLOR_PATTERN = re.compile(r"^#[0-9a-fA-F]{6}$")

DEFAULT_TAG_COLOR = "#6E59A5"


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.datetime.now(timezone.utc)


def ensure_timezone_aware(dt_value: Optional[datetime.datetime]) -> datetime.datetime:
    """Ensure a datetime is timezone-aware, treating naive datetimes as UTC.

    SQLite drops tzinfo on round trip, so everything read back from the
    database passes through here.
    """
    if dt_value is None:
        return utc_now()
    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value


def random_tag_color() -> str:
    """Pick a pseudo-random display color for a new tag."""
    return f"#{random.randint(0, 0xFFFFFF):06x}"


class Tag(BaseModel):
    """A tag shared across an owner's thoughts."""

    id: str = Field(..., description="Opaque tag ID, assigned at creation")
    name: str = Field(..., description="Tag name, unique per owner (case-sensitive)")
    color: str = Field(default=DEFAULT_TAG_COLOR, description="Display color #rrggbb")
    owner_id: Optional[str] = Field(default=None, description="Owning user")

    model_config = {"validate_assignment": True, "frozen": True}

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate that the name is not blank."""
        if not v.strip():
            raise ValueError("Tag name cannot be empty")
        return v

    @field_validator("color", mode="before")
    @classmethod
    def validate_color(cls, v: Optional[str]) -> str:
        if not v:
            return DEFAULT_TAG_COLOR
        if not TAG_COLOR_PATTERN.match(v):
            raise ValueError(f"Tag color must look like #rrggbb, got {v!r}")
        return v

    def __str__(self) -> str:
        """Return string representation of tag."""
        return self.name


def dedupe_tags(tags: List[Tag]) -> List[Tag]:
    """Drop repeated tag ids, keeping the first occurrence and its position."""
    seen = set()
    unique = []
    for tag in tags:
        if tag.id not in seen:
            seen.add(tag.id)
            unique.append(tag)
    return unique


class Note(BaseModel):
    """A thought, either a draft or published."""

    id: Optional[str] = Field(
        default=None, description="Opaque ID; None until the first persisted write"
    )
    content: str = Field(default="", description="Body text")
    owner_id: str = Field(..., description="User that owns the thought")
    is_draft: bool = Field(default=True, description="False once published")
    created_at: datetime.datetime = Field(
        default_factory=utc_now, description="Creation time (server-assigned)"
    )
    updated_at: datetime.datetime = Field(
        default_factory=utc_now, description="Last write time (server-assigned)"
    )
    tags: List[Tag] = Field(default_factory=list, description="Tags, unique by id")

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: List[Tag]) -> List[Tag]:
        return dedupe_tags(v)

    @field_validator("created_at", "updated_at")
    @classmethod
    def validate_timestamps(cls, v: datetime.datetime) -> datetime.datetime:
        return ensure_timezone_aware(v)

    @property
    def tag_ids(self) -> FrozenSet[str]:
        return frozenset(tag.id for tag in self.tags)


class SortOrder(str, Enum):
    """Fetch order of the thought collection, by creation time."""

    NEWEST = "newest"
    OLDEST = "oldest"

    @property
    def ascending(self) -> bool:
        return self is SortOrder.OLDEST


class DateRange(BaseModel):
    """Calendar-date bounds on a thought's creation time.

    ``start`` is exclusive of its midnight instant; ``end`` covers the whole
    end day (the bound is extended by one day).
    """

    start: Optional[datetime.date] = None
    end: Optional[datetime.date] = None

    model_config = {"frozen": True}

    @property
    def is_set(self) -> bool:
        return self.start is not None or self.end is not None

    def lower_bound(self, tz: datetime.tzinfo = timezone.utc) -> Optional[datetime.datetime]:
        if self.start is None:
            return None
        return datetime.datetime.combine(self.start, datetime.time.min, tzinfo=tz)

    def upper_bound(self, tz: datetime.tzinfo = timezone.utc) -> Optional[datetime.datetime]:
        if self.end is None:
            return None
        next_day = self.end + datetime.timedelta(days=1)
        return datetime.datetime.combine(next_day, datetime.time.min, tzinfo=tz)


class FilterState(BaseModel):
    """Inputs to the filter pipeline. Derived, never persisted."""

    query: str = Field(default="", description="Search text; empty disables search")
    sort: SortOrder = Field(default=SortOrder.NEWEST)
    date_range: DateRange = Field(default_factory=DateRange)
    selected_tag_ids: FrozenSet[str] = Field(default_factory=frozenset)

    model_config = {"frozen": True}

    @property
    def is_active(self) -> bool:
        """True when any predicate would exclude something."""
        return bool(
            self.query.strip() or self.date_range.is_set or self.selected_tag_ids
        )


class EmptyState(str, Enum):
    """Why the filtered view is empty. The two cases get different messages."""

    NO_THOUGHTS = "no_thoughts"
    NO_MATCH = "no_match"

    @property
    def message(self) -> str:
        if self is EmptyState.NO_THOUGHTS:
            return "You haven't saved any thoughts yet."
        return "No thoughts match your filters."


class SessionState(str, Enum):
    """States of the draft session state machine."""

    EMPTY = "empty"
    EDITING = "editing"
    AUTOSAVING = "autosaving"
    DRAFT_SAVED = "draft_saved"
    PUBLISHING = "publishing"


class StatusLevel(str, Enum):
    INFO = "info"
    ERROR = "error"


class StatusEvent(BaseModel):
    """A user-facing status message for the display sink."""

    level: StatusLevel
    title: str
    description: str
    error_code: Optional[str] = None
    created_at: datetime.datetime = Field(default_factory=utc_now)

    model_config = {"frozen": True}

    def __str__(self) -> str:
        return f"{self.title}: {self.description}"


@dataclass(frozen=True)
class CurrentDraft:
    """The owner's outstanding draft, as held by a draft session.

    Attributes:
        owner_id: User the draft belongs to.
        note_id: Persisted ID of the draft thought.
    """

    owner_id: str
    note_id: str


@dataclass
class SaveResult:
    """Outcome of one save attempt.

    Attributes:
        ok: True when both the content write and tag reconciliation succeeded.
        note: The thought as persisted (None when nothing was written).
        error: The failure, when ``ok`` is False.
        discarded: True when the session was disposed before the save settled.
    """

    ok: bool
    note: Optional[Note] = None
    error: Optional[Exception] = None
    discarded: bool = False
    details: Dict[str, Any] = field(default_factory=dict)
