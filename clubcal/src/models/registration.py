"""
Registration model.

Registrations belong to the wider membership domain; the recurrence engine
only reads them. The existence of at least one registration row on a future
occurrence is what makes that occurrence "live" during pattern
reconciliation, regardless of the registration's own status.
"""

import enum

from sqlalchemy import Column, Integer, String, DateTime, Text, Enum, ForeignKey
from sqlalchemy.orm import relationship

from clubcal.src.models import Base
from clubcal.src.models.mixins import GuidMixin
from clubcal.src.utils.time_utils import utc_now


class RegistrationStatus(enum.Enum):
    """Registration lifecycle status."""
    CONFIRMED = "confirmed"
    PENDING = "pending"
    CANCELLED = "cancelled"
    WAITLISTED = "waitlisted"
    NO_SHOW = "no_show"
    COMPLETED = "completed"


class Registration(Base, GuidMixin):
    """
    A participant's registration on one event or occurrence.

    Attributes:
        id: Primary key (internal, never exposed)
        guid: GUID string property (reg_xxx, inherited from GuidMixin)
        tenant_id: Owning tenant
        event_id: Registered event (CASCADE on delete)
        member_ref: Reference into the external member directory
        participant_name: Display name captured at registration time
        status: RegistrationStatus
        registered_at: Registration timestamp
        notes: Free text
    """

    __tablename__ = "registrations"

    GUID_PREFIX = "reg"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(Integer, nullable=False, index=True)
    event_id = Column(
        Integer,
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    member_ref = Column(String(64), nullable=True)
    participant_name = Column(String(255), nullable=False, default="")
    status = Column(
        Enum(RegistrationStatus, values_callable=lambda x: [e.value for e in x]),
        default=RegistrationStatus.CONFIRMED,
        nullable=False
    )
    registered_at = Column(DateTime, default=utc_now, nullable=False)
    notes = Column(Text, nullable=True)

    event = relationship("Event", back_populates="registrations")

    def __repr__(self) -> str:
        return (
            f"<Registration("
            f"id={self.id}, "
            f"event_id={self.event_id}, "
            f"participant='{self.participant_name}', "
            f"status={self.status}"
            f")>"
        )
