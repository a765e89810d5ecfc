"""
Pydantic schemas for recurrence patterns and reconciliation results.

RecurrencePattern is the value type embedded (as JSON) on master events.
ReconciliationResult is the transient report returned by every pattern
update, preview and single-occurrence edit; it is never persisted.
"""

import enum
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class RecurrenceType(str, enum.Enum):
    """Closed set of supported recurrence frequencies."""
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class DayOfWeek(int, enum.Enum):
    """Weekday numbering follows datetime.weekday() (Monday == 0)."""
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6


class UpdateStrategy(str, enum.Enum):
    """How a pattern change treats future occurrences that have registrations."""
    PRESERVE_REGISTRATIONS = "preserve_registrations"
    FORCE_UPDATE = "force_update"
    CANCEL_CONFLICTS = "cancel_conflicts"


class RecurrencePattern(BaseModel):
    """
    Recurrence rule of a master event.

    interval is "every N units". It is deliberately not range-checked here:
    patterns loaded from storage are validated by the occurrence generator,
    which rejects a non-positive interval as a configuration error.
    days_of_week is only consulted for weekly patterns; an empty list means
    "same weekday as the series start". end_date is inclusive.
    """
    type: RecurrenceType = Field(
        default=RecurrenceType.NONE,
        description="Recurrence frequency"
    )
    interval: int = Field(
        default=1,
        description="Repeat every N days/weeks/months/years"
    )
    days_of_week: List[DayOfWeek] = Field(
        default_factory=list,
        description="Weekdays for weekly patterns (Monday=0)"
    )
    end_date: Optional[date] = Field(
        default=None,
        description="Last date (inclusive) an occurrence may fall on"
    )
    max_occurrences: Optional[int] = Field(
        default=None,
        ge=1,
        description="Hard stop counted from occurrence #1"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "type": "weekly",
                "interval": 1,
                "days_of_week": [0, 2, 4],
                "end_date": "2026-12-31",
                "max_occurrences": None
            }
        }
    }

    @field_validator("days_of_week")
    @classmethod
    def normalize_days(cls, v: List[DayOfWeek]) -> List[DayOfWeek]:
        """Treat the weekday list as a set: drop duplicates, keep it sorted."""
        return sorted(set(v))

    @field_validator("end_date", mode="before")
    @classmethod
    def coerce_end_date(cls, v):
        if isinstance(v, datetime):
            return v.date()
        return v

    @property
    def is_recurring(self) -> bool:
        return self.type != RecurrenceType.NONE

    @property
    def weekday_set(self) -> set:
        """Weekday numbers as plain ints, for datetime.weekday() membership."""
        return {int(d) for d in self.days_of_week}

    def to_json(self) -> dict:
        """Serialize for the master event's recurrence_json column."""
        return self.model_dump(mode="json")

    @classmethod
    def from_json(cls, data: Optional[dict]) -> Optional["RecurrencePattern"]:
        if not data:
            return None
        return cls.model_validate(data)


class ConflictingOccurrence(BaseModel):
    """A future occurrence with live registrations, listed for operator review."""
    guid: str = Field(..., description="Occurrence GUID (evt_xxx)")
    title: str
    start_time: datetime
    registration_count: int
    participant_names: List[str] = Field(default_factory=list)


class ReconciliationResult(BaseModel):
    """
    Outcome of a pattern update, preview, or single-occurrence edit.

    Expected business failures (unknown GUID, invalid pattern) are reported
    with success=False and a message instead of an exception.
    """
    success: bool = True
    message: str = ""
    occurrences_deleted: int = 0
    occurrences_created: int = 0
    occurrences_preserved: int = 0
    occurrences_cancelled: int = 0
    registrations_affected: int = 0
    warnings: List[str] = Field(default_factory=list)
    conflicting_occurrences: List[ConflictingOccurrence] = Field(default_factory=list)

    @classmethod
    def failure(cls, message: str) -> "ReconciliationResult":
        return cls(success=False, message=message)


class OccurrenceUpdate(BaseModel):
    """
    Field changes for a one-off edit of a single occurrence.

    Only fields explicitly present in the request are applied.
    """
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    event_type: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    facility_ref: Optional[str] = None
    instructor_ref: Optional[str] = None
    max_capacity: Optional[int] = Field(None, ge=0)
    price: Optional[Decimal] = Field(None, ge=0)
    allow_waitlist: Optional[bool] = None
    special_instructions: Optional[str] = None
    required_equipment: Optional[List[str]] = None


class UpdateRecurrenceRequest(BaseModel):
    """Administrative request to change a series' pattern."""
    pattern: RecurrencePattern
    strategy: UpdateStrategy = UpdateStrategy.PRESERVE_REGISTRATIONS

    @model_validator(mode="after")
    def require_recurring_pattern(self) -> "UpdateRecurrenceRequest":
        if not self.pattern.is_recurring:
            raise ValueError("A series pattern update requires a recurring pattern type")
        return self
