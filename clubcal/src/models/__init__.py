"""
SQLAlchemy models for the ClubCal recurrence engine.

This module provides the declarative base class and imports all models
to ensure they are registered with SQLAlchemy's metadata.
"""

from sqlalchemy.orm import declarative_base

# All models inherit from this Base class
Base = declarative_base()


# Import all models here so they are registered with Base.metadata
from clubcal.src.models.tenant import Tenant
from clubcal.src.models.event import Event, EventType, EventStatus, RecurrenceStatus
from clubcal.src.models.registration import Registration, RegistrationStatus

__all__ = [
    "Base",
    "Tenant",
    "Event",
    "EventType",
    "EventStatus",
    "RecurrenceStatus",
    "Registration",
    "RegistrationStatus",
]
