"""
Event model for recurring masters and their occurrences.

A single table holds three kinds of rows:
- standalone events (no recurrence, no master)
- recurring masters (is_recurring_master=True, recurrence_json set)
- occurrences (master_event_id set, recurrence_json always NULL)

Design Rationale:
- master_event_id is a plain indexed back-reference, not a foreign key. An
  occurrence never owns its master and a dangling reference (orphan) must
  stay detectable by the integrity scan rather than be prevented or
  cascaded away by the database.
- generated_until is the horizon marker of a master: occurrences exist up
  to it; it only ever moves forward.
- Occurrences copy the master's business fields at generation time so that
  one-off edits of a single occurrence never touch the series.
- Registrations are owned by their event and are deleted with it.
"""

import enum
from datetime import timedelta
from typing import Optional

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Text, Numeric,
    Enum, Index
)
from sqlalchemy.orm import relationship

from clubcal.src.models import Base
from clubcal.src.models.mixins import GuidMixin
from clubcal.src.models.types import JSONBType
from clubcal.src.schemas.recurrence import RecurrencePattern
from clubcal.src.utils.time_utils import utc_now


class EventType(enum.Enum):
    """Kind of club activity."""
    CLASS = "class"
    WORKSHOP = "workshop"
    TOURNAMENT = "tournament"
    EVENT = "event"
    PRIVATE = "private"
    MAINTENANCE = "maintenance"


class EventStatus(enum.Enum):
    """Lifecycle status of a concrete event or occurrence."""
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"


class RecurrenceStatus(enum.Enum):
    """Generation status of a recurring master."""
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


def _enum_values(enum_cls):
    return [e.value for e in enum_cls]


class Event(Base, GuidMixin):
    """
    Calendar event: standalone, recurring master, or occurrence.

    Attributes:
        id: Primary key (internal, never exposed)
        uuid: UUIDv7 for external identification (inherited from GuidMixin)
        guid: GUID string property (evt_xxx, inherited from GuidMixin)
        tenant_id: Owning tenant

        Template / Business Fields:
            title, description, event_type
            start_time, end_time: naive UTC instants
            facility_ref, instructor_ref: references into external directories
            max_capacity, current_enrollment, price
            status: EventStatus
            registration_deadline, cancellation_deadline: naive UTC instants
            cancellation_policy, allow_waitlist, special_instructions
            required_equipment: list of equipment names

        Recurrence Fields:
            recurrence_json: Serialized RecurrencePattern (masters only)
            is_recurring_master: True for series masters
            recurrence_status: RecurrenceStatus (masters only)
            generated_until: Horizon up to which occurrences exist (masters only)
            master_event_id: Back-reference to the master (occurrences only)
            occurrence_number: Position in the series (unique per master, gaps allowed)
            is_modified_from_series: Occurrence was edited individually

        Audit:
            created_at, updated_at, created_by, updated_by

    Relationships:
        registrations: Registrations on this event (one-to-many, CASCADE)

    Indexes:
        - uuid (unique)
        - tenant_id, is_recurring_master
        - master_event_id, start_time (future-occurrence lookups)
        - recurrence_status, generated_until (horizon scans)
    """

    __tablename__ = "events"

    GUID_PREFIX = "evt"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(Integer, nullable=False, index=True)

    # Template / business fields
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    event_type = Column(
        Enum(EventType, values_callable=_enum_values),
        default=EventType.CLASS,
        nullable=False
    )
    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=False)
    facility_ref = Column(String(64), nullable=True)
    instructor_ref = Column(String(64), nullable=True)
    max_capacity = Column(Integer, default=0, nullable=False)
    current_enrollment = Column(Integer, default=0, nullable=False)
    price = Column(Numeric(10, 2), nullable=True)
    status = Column(
        Enum(EventStatus, values_callable=_enum_values),
        default=EventStatus.SCHEDULED,
        nullable=False,
        index=True
    )
    registration_deadline = Column(DateTime, nullable=True)
    cancellation_deadline = Column(DateTime, nullable=True)
    cancellation_policy = Column(Text, nullable=True)
    allow_waitlist = Column(Boolean, default=True, nullable=False)
    special_instructions = Column(Text, nullable=True)
    required_equipment = Column(JSONBType, nullable=True)

    # Recurrence
    recurrence_json = Column(JSONBType, nullable=True)
    is_recurring_master = Column(Boolean, default=False, nullable=False, index=True)
    recurrence_status = Column(
        Enum(RecurrenceStatus, values_callable=_enum_values),
        nullable=True
    )
    generated_until = Column(DateTime, nullable=True)
    master_event_id = Column(Integer, nullable=True, index=True)
    occurrence_number = Column(Integer, nullable=True)
    is_modified_from_series = Column(Boolean, default=False, nullable=False)

    # Audit
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(
        DateTime,
        default=utc_now,
        onupdate=utc_now,
        nullable=False
    )
    created_by = Column(String(255), nullable=True)
    updated_by = Column(String(255), nullable=True)

    registrations = relationship(
        "Registration",
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="Registration.id"
    )

    __table_args__ = (
        Index("idx_events_master_start", "master_event_id", "start_time"),
        Index("idx_events_recurrence_horizon", "recurrence_status", "generated_until"),
        Index("idx_events_tenant_master", "tenant_id", "is_recurring_master"),
    )

    @property
    def recurrence(self) -> Optional[RecurrencePattern]:
        """Typed view of recurrence_json (None for occurrences and standalone events)."""
        return RecurrencePattern.from_json(self.recurrence_json)

    @recurrence.setter
    def recurrence(self, pattern: Optional[RecurrencePattern]) -> None:
        self.recurrence_json = pattern.to_json() if pattern is not None else None

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    @property
    def is_occurrence(self) -> bool:
        return self.master_event_id is not None

    @property
    def registration_count(self) -> int:
        return len(self.registrations)

    def __repr__(self) -> str:
        return (
            f"<Event("
            f"id={self.id}, "
            f"title='{self.title}', "
            f"start={self.start_time}, "
            f"master={self.master_event_id}, "
            f"n={self.occurrence_number}, "
            f"status={self.status}"
            f")>"
        )

    def __str__(self) -> str:
        suffix = f" #{self.occurrence_number}" if self.occurrence_number else ""
        return f"{self.title}{suffix} - {self.start_time}"
