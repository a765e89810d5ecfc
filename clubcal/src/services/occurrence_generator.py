"""
Occurrence generator for recurring master events.

Pure computation: given a master event, a recurrence pattern and a date
window, produce the ordered list of occurrences that fall in the window.
Nothing here reads or writes the database; the returned Event objects are
transient and are persisted (or discarded, for previews) by the caller.

Design:
- The series is anchored on the master's start instant. Candidates earlier
  than the window start are skipped without being emitted or numbered, so a
  window that opens mid-series keeps the series' time of day, weekly parity
  and day of month.
- Monthly and yearly candidates are computed from the anchor
  (anchor + n * interval) with relativedelta, which clamps to the last day
  of a shorter month. Jan 31 therefore yields Feb 28/29, Mar 31, Apr 30.
- Weekly patterns with a weekday set only emit dates whose weekday is in
  the set, in weeks that lie a multiple of `interval` weeks after the
  anchor's week (weeks start on Monday).
- A single call never emits more than `max_count` occurrences.
"""

from datetime import date, datetime, timedelta
from typing import Iterator, List, Optional

from dateutil.relativedelta import relativedelta

from clubcal.src.models.event import Event, EventStatus
from clubcal.src.schemas.recurrence import RecurrencePattern, RecurrenceType
from clubcal.src.services.exceptions import ValidationError
from clubcal.src.utils.time_utils import to_utc


# Safety cap on occurrences emitted by one generation call
DEFAULT_MAX_OCCURRENCES = 500

# Master fields copied verbatim onto every occurrence
COPIED_FIELDS = (
    "tenant_id",
    "title",
    "description",
    "event_type",
    "facility_ref",
    "instructor_ref",
    "max_capacity",
    "price",
    "cancellation_policy",
    "allow_waitlist",
    "special_instructions",
)

DEFAULT_CREATED_BY = "recurrence_manager"

_SUPPORTED_TYPES = {
    RecurrenceType.DAILY,
    RecurrenceType.WEEKLY,
    RecurrenceType.MONTHLY,
    RecurrenceType.YEARLY,
}


def validate_pattern(pattern: RecurrencePattern) -> None:
    """
    Reject patterns that cannot be generated.

    Raises:
        ValidationError: unsupported type, interval < 1, max_occurrences < 1,
            or a weekday outside Monday..Sunday
    """
    if pattern.type == RecurrenceType.NONE:
        return
    if pattern.type not in _SUPPORTED_TYPES:
        raise ValidationError(
            f"Unsupported recurrence type: {pattern.type}", field="type"
        )
    if pattern.interval is None or pattern.interval < 1:
        raise ValidationError(
            f"Recurrence interval must be a positive integer, got {pattern.interval}",
            field="interval"
        )
    if pattern.max_occurrences is not None and pattern.max_occurrences < 1:
        raise ValidationError(
            f"max_occurrences must be at least 1, got {pattern.max_occurrences}",
            field="max_occurrences"
        )
    if any(not 0 <= int(day) <= 6 for day in pattern.days_of_week):
        raise ValidationError("days_of_week must be between 0 (Monday) and 6 (Sunday)", field="days_of_week")


def generate_occurrences(
    master: Event,
    pattern: RecurrencePattern,
    window_start: datetime,
    window_end: datetime,
    starting_number: int = 1,
    max_count: int = DEFAULT_MAX_OCCURRENCES,
) -> List[Event]:
    """
    Generate the occurrences of a series that fall inside a window.

    Args:
        master: Recurring master event (template fields and start anchor)
        pattern: Pattern to generate with (may differ from the master's own
            pattern, e.g. when previewing a change)
        window_start: First instant an occurrence may start at (inclusive)
        window_end: Last instant an occurrence may start at (inclusive)
        starting_number: occurrence_number given to the first emitted item
        max_count: Safety cap on the number of occurrences returned

    Returns:
        Transient occurrences ordered by start time, numbered consecutively

    Raises:
        ValidationError: Invalid pattern, window, or starting number
    """
    if pattern is None or pattern.type == RecurrenceType.NONE:
        return []

    validate_pattern(pattern)

    window_start = to_utc(window_start)
    window_end = to_utc(window_end)
    if window_start > window_end:
        raise ValidationError(
            f"Window start {window_start} is after window end {window_end}",
            field="window_start"
        )
    if starting_number < 1:
        raise ValidationError(
            f"Occurrence numbers start at 1, got {starting_number}",
            field="starting_number"
        )

    occurrences: List[Event] = []
    number = starting_number

    for candidate in iter_candidates(to_utc(master.start_time), pattern):
        if candidate < window_start:
            continue
        if candidate > window_end:
            break
        if pattern.end_date is not None and candidate.date() > pattern.end_date:
            break
        if pattern.max_occurrences is not None and number > pattern.max_occurrences:
            break
        if len(occurrences) >= max_count:
            break

        occurrences.append(build_occurrence(master, candidate, number))
        number += 1

    return occurrences


def iter_candidates(anchor: datetime, pattern: RecurrencePattern) -> Iterator[datetime]:
    """
    Yield the (unbounded) sequence of candidate start instants of a series.

    The caller is responsible for stopping the iteration.
    """
    interval = pattern.interval

    if pattern.type == RecurrenceType.DAILY:
        n = 0
        while True:
            yield anchor + timedelta(days=n * interval)
            n += 1

    elif pattern.type == RecurrenceType.WEEKLY:
        if not pattern.days_of_week:
            n = 0
            while True:
                yield anchor + timedelta(weeks=n * interval)
                n += 1
        else:
            current = anchor
            if not _is_eligible_weekday(current, anchor, pattern):
                current = next_weekly_date(current, anchor, pattern)
            while True:
                yield current
                current = next_weekly_date(current, anchor, pattern)

    elif pattern.type == RecurrenceType.MONTHLY:
        n = 0
        while True:
            yield anchor + relativedelta(months=n * interval)
            n += 1

    elif pattern.type == RecurrenceType.YEARLY:
        n = 0
        while True:
            yield anchor + relativedelta(years=n * interval)
            n += 1


def next_weekly_date(
    current: datetime,
    anchor: datetime,
    pattern: RecurrencePattern,
) -> datetime:
    """
    Next date after `current` for a weekly pattern with a weekday set.

    Scans forward day by day, at most 7 * (interval + 1) days (two weeks for
    a plain weekly pattern). Falls back to current + interval weeks when
    nothing in the lookahead qualifies.
    """
    lookahead = 7 * (pattern.interval + 1)
    for offset in range(1, lookahead + 1):
        candidate = current + timedelta(days=offset)
        if _is_eligible_weekday(candidate, anchor, pattern):
            return candidate
    return current + timedelta(weeks=pattern.interval)


def _week_start(value: datetime) -> date:
    """Monday of the week containing value."""
    return value.date() - timedelta(days=value.weekday())


def _is_eligible_weekday(
    candidate: datetime,
    anchor: datetime,
    pattern: RecurrencePattern,
) -> bool:
    if candidate.weekday() not in pattern.weekday_set:
        return False
    weeks_since_anchor = (_week_start(candidate) - _week_start(anchor)).days // 7
    return weeks_since_anchor % pattern.interval == 0


def build_occurrence(master: Event, start: datetime, number: int) -> Event:
    """
    Materialize one occurrence of a master at `start`.

    Business fields are copied from the master; status, enrollment and
    recurrence are reset; deadlines keep the master's offset from its start.
    """
    master_start = to_utc(master.start_time)
    duration = to_utc(master.end_time) - master_start

    occurrence = Event(
        start_time=start,
        end_time=start + duration,
        status=EventStatus.SCHEDULED,
        current_enrollment=0,
        recurrence_json=None,
        is_recurring_master=False,
        recurrence_status=None,
        generated_until=None,
        master_event_id=master.id,
        occurrence_number=number,
        is_modified_from_series=False,
        registration_deadline=shift_deadline(master.registration_deadline, master_start, start),
        cancellation_deadline=shift_deadline(master.cancellation_deadline, master_start, start),
        required_equipment=list(master.required_equipment or []),
        created_by=master.created_by or DEFAULT_CREATED_BY,
    )
    for field_name in COPIED_FIELDS:
        setattr(occurrence, field_name, getattr(master, field_name))

    return occurrence


def shift_deadline(
    master_deadline: Optional[datetime],
    master_start: datetime,
    occurrence_start: datetime,
) -> Optional[datetime]:
    """Apply the master's deadline-to-start offset to an occurrence start."""
    if master_deadline is None:
        return None
    return occurrence_start + (to_utc(master_deadline) - master_start)
