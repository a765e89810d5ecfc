"""
Pydantic schemas for recurrence patterns and reconciliation reporting.
"""

from clubcal.src.schemas.recurrence import (
    RecurrenceType,
    DayOfWeek,
    UpdateStrategy,
    RecurrencePattern,
    ConflictingOccurrence,
    ReconciliationResult,
    OccurrenceUpdate,
    UpdateRecurrenceRequest,
)

__all__ = [
    "RecurrenceType",
    "DayOfWeek",
    "UpdateStrategy",
    "RecurrencePattern",
    "ConflictingOccurrence",
    "ReconciliationResult",
    "OccurrenceUpdate",
    "UpdateRecurrenceRequest",
]
