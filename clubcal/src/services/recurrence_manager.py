"""
Recurrence manager: horizon extension, history cleanup and integrity scans.

Keeps a rolling window of materialized occurrences in front of every active
recurring master of one tenant.

Design:
- A master's generated_until is the horizon marker. Occurrences exist up to
  it and it only ever moves forward.
- extend() is idempotent: it only writes when less than
  minimum_future_months of horizon remain, and then moves the horizon by
  extension_batch_months. Two calls in a row write once.
- Each master's batch is persisted as its own unit of work; there is no
  transaction spanning several masters.
- Cleanup only removes completed occurrences past the retention window.
  Scheduled and cancelled occurrences are never touched, however old.
- Integrity scans only report; nothing is repaired automatically.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import List, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy import func
from sqlalchemy.orm import Session, aliased

from clubcal.src.config.settings import RecurrenceSettings, get_settings
from clubcal.src.models.event import Event, EventStatus, RecurrenceStatus
from clubcal.src.schemas.recurrence import RecurrencePattern
from clubcal.src.services.exceptions import NotFoundError
from clubcal.src.services.occurrence_generator import (
    generate_occurrences as generate_window,
)
from clubcal.src.utils.logging_config import get_logger
from clubcal.src.utils.time_utils import to_utc, utc_now


logger = get_logger("services")


@dataclass
class IntegrityReport:
    """
    Findings of a read-only integrity scan.

    Attributes:
        masters_checked: Active recurring masters inspected
        masters_without_occurrences: GUIDs of active masters with no occurrences
        orphaned_occurrences: Occurrences whose master does not resolve
    """
    masters_checked: int = 0
    masters_without_occurrences: List[str] = field(default_factory=list)
    orphaned_occurrences: int = 0

    @property
    def is_healthy(self) -> bool:
        return not self.masters_without_occurrences and self.orphaned_occurrences == 0


class RecurrenceManager:
    """
    Horizon extension and housekeeping for one tenant's recurring series.

    Usage:
        >>> manager = RecurrenceManager(db, tenant_id=tenant.id)
        >>> manager.initial_generation(master)
        >>> for master in manager.list_active_masters():
        ...     manager.extend(master)
    """

    def __init__(
        self,
        db: Session,
        tenant_id: int,
        settings: Optional[RecurrenceSettings] = None
    ):
        """
        Initialize the recurrence manager.

        Args:
            db: SQLAlchemy session opened for the tenant
            tenant_id: Tenant whose events are managed
            settings: Recurrence settings (defaults to get_settings())
        """
        self.db = db
        self.tenant_id = tenant_id
        self.settings = settings or get_settings()

    def _events(self):
        return self.db.query(Event).filter(Event.tenant_id == self.tenant_id)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def next_occurrence_number(self, master: Event) -> int:
        """One past the highest occurrence number of a series (gaps allowed)."""
        current = (
            self.db.query(func.max(Event.occurrence_number))
            .filter(Event.master_event_id == master.id)
            .scalar()
        )
        return (current or 0) + 1

    def generate_occurrences(
        self,
        master: Event,
        window_start: datetime,
        window_end: datetime,
        pattern: Optional[RecurrencePattern] = None,
        starting_number: Optional[int] = None,
    ) -> List[Event]:
        """
        Generate (without persisting) a master's occurrences for a window.

        Args:
            master: Recurring master event
            window_start: First allowed start instant (inclusive)
            window_end: Last allowed start instant (inclusive)
            pattern: Pattern override (defaults to the master's own pattern)
            starting_number: First occurrence number (defaults to max + 1)

        Returns:
            Transient occurrences, capped at max_occurrences_per_generation

        Raises:
            ValidationError: If the pattern or window is invalid
        """
        pattern = pattern or master.recurrence
        if pattern is None or not pattern.is_recurring:
            return []

        if starting_number is None:
            starting_number = self.next_occurrence_number(master)

        return generate_window(
            master,
            pattern,
            window_start,
            window_end,
            starting_number=starting_number,
            max_count=self.settings.max_occurrences_per_generation,
        )

    def initial_generation(
        self,
        master: Event,
        now: Optional[datetime] = None
    ) -> List[Event]:
        """
        Materialize the first window of a newly created series.

        Marks the event as an active recurring master and sets its horizon
        to max(now, master start) + initial_generation_months. A master that
        already has a horizon is extended instead.

        Args:
            master: Master event with a recurring pattern (may be unsaved)
            now: Reference time (defaults to the current UTC time)

        Returns:
            Persisted occurrences (empty for a non-recurring pattern)
        """
        pattern = master.recurrence
        if pattern is None or not pattern.is_recurring:
            return []

        if master.generated_until is not None:
            return self.extend(master, now=now)

        now = to_utc(now) or utc_now()

        try:
            if master.id is None:
                master.tenant_id = master.tenant_id or self.tenant_id
                self.db.add(master)
                self.db.flush()

            window_start = to_utc(master.start_time)
            window_end = max(now, window_start) + relativedelta(
                months=self.settings.initial_generation_months
            )

            occurrences = self.generate_occurrences(
                master, window_start, window_end, pattern=pattern, starting_number=1
            )
            horizon = self._reached_horizon(occurrences, window_end)

            master.is_recurring_master = True
            master.recurrence_status = RecurrenceStatus.ACTIVE
            master.generated_until = horizon
            self.db.add_all(occurrences)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Generated initial occurrences for series",
            extra={
                "tenant_id": self.tenant_id,
                "master_guid": master.guid,
                "count": len(occurrences),
                "generated_until": horizon.isoformat(),
            }
        )
        return occurrences

    def _reached_horizon(self, occurrences: List[Event], window_end: datetime) -> datetime:
        """Horizon after a generation call; a capped call stops at its last occurrence."""
        if occurrences and len(occurrences) >= self.settings.max_occurrences_per_generation:
            return occurrences[-1].start_time
        return window_end

    def extend(self, master: Event, now: Optional[datetime] = None) -> List[Event]:
        """
        Extend a master's horizon when it is running short.

        No-op unless the master is active with a recurring pattern and less
        than minimum_future_months of horizon remain. The window ends
        extension_batch_months after the current horizon; the horizon moves
        to the window end even when the window produced nothing.

        The window opens one microsecond after the horizon rather than on
        the following day. A horizon is an instant, so a candidate later on
        the horizon's own calendar day is still generated.

        When the call hits max_occurrences_per_generation the horizon stops
        at the last emitted occurrence, and the next call continues from
        there.

        A series whose end date or occurrence limit has been reached is
        marked completed instead.

        Args:
            master: Recurring master event
            now: Reference time (defaults to the current UTC time)

        Returns:
            Newly persisted occurrences (possibly empty)
        """
        pattern = master.recurrence
        if (
            master.recurrence_status != RecurrenceStatus.ACTIVE
            or pattern is None
            or not pattern.is_recurring
        ):
            return []

        now = to_utc(now) or utc_now()
        horizon = to_utc(master.generated_until) or now

        if horizon >= now + relativedelta(months=self.settings.minimum_future_months):
            return []

        window_start = horizon + timedelta(microseconds=1)
        window_end = horizon + relativedelta(months=self.settings.extension_batch_months)
        starting_number = self.next_occurrence_number(master)

        if self._is_exhausted(pattern, window_start.date(), starting_number):
            try:
                master.recurrence_status = RecurrenceStatus.COMPLETED
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
            logger.info(
                "Series reached its end, marked completed",
                extra={"tenant_id": self.tenant_id, "master_guid": master.guid}
            )
            return []

        try:
            occurrences = self.generate_occurrences(
                master,
                window_start,
                window_end,
                pattern=pattern,
                starting_number=starting_number,
            )
            horizon = self._reached_horizon(occurrences, window_end)
            self.db.add_all(occurrences)
            master.generated_until = horizon
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Extended series horizon",
            extra={
                "tenant_id": self.tenant_id,
                "master_guid": master.guid,
                "count": len(occurrences),
                "generated_until": horizon.isoformat(),
            }
        )
        return occurrences

    @staticmethod
    def _is_exhausted(
        pattern: RecurrencePattern,
        window_start: date,
        next_number: int
    ) -> bool:
        if pattern.end_date is not None and pattern.end_date < window_start:
            return True
        if pattern.max_occurrences is not None and next_number > pattern.max_occurrences:
            return True
        return False

    def list_active_masters(self) -> List[Event]:
        """Active recurring masters of the tenant, in id order."""
        return (
            self._events()
            .filter(
                Event.is_recurring_master.is_(True),
                Event.recurrence_status == RecurrenceStatus.ACTIVE,
            )
            .order_by(Event.id)
            .all()
        )

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def cleanup_old_occurrences(self, now: Optional[datetime] = None) -> int:
        """
        Delete completed occurrences that ended before the retention cutoff.

        Deletes in batches of cleanup_batch_size, committing each batch.
        Registrations of deleted occurrences are deleted with them.

        Args:
            now: Reference time (defaults to the current UTC time)

        Returns:
            Number of occurrences deleted
        """
        now = to_utc(now) or utc_now()
        cutoff = now - relativedelta(months=self.settings.history_retention_months)
        total_deleted = 0

        while True:
            batch = (
                self._events()
                .filter(
                    Event.master_event_id.isnot(None),
                    Event.status == EventStatus.COMPLETED,
                    Event.end_time < cutoff,
                )
                .order_by(Event.id)
                .limit(self.settings.cleanup_batch_size)
                .all()
            )
            if not batch:
                break

            try:
                for occurrence in batch:
                    self.db.delete(occurrence)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

            total_deleted += len(batch)

        if total_deleted:
            logger.info(
                "Cleaned up old occurrences",
                extra={
                    "tenant_id": self.tenant_id,
                    "deleted": total_deleted,
                    "cutoff": cutoff.isoformat(),
                }
            )
        return total_deleted

    def validate_integrity(self) -> IntegrityReport:
        """
        Scan the tenant's series for anomalies without repairing them.

        Flags active masters that have no occurrences at all, and
        occurrences whose master_event_id does not resolve to a master of
        the same tenant. Both are logged as warnings.

        Returns:
            IntegrityReport with the findings
        """
        report = IntegrityReport()

        occurrence = aliased(Event)
        masters = self.list_active_masters()
        report.masters_checked = len(masters)

        empty_masters = (
            self._events()
            .outerjoin(occurrence, occurrence.master_event_id == Event.id)
            .filter(
                Event.is_recurring_master.is_(True),
                Event.recurrence_status == RecurrenceStatus.ACTIVE,
                occurrence.id.is_(None),
            )
            .order_by(Event.id)
            .all()
        )
        for master in empty_masters:
            report.masters_without_occurrences.append(master.guid)
            logger.warning(
                "Active series has no occurrences, may need regeneration",
                extra={"tenant_id": self.tenant_id, "master_guid": master.guid}
            )

        master = aliased(Event)
        report.orphaned_occurrences = (
            self._events()
            .outerjoin(
                master,
                (master.id == Event.master_event_id)
                & (master.tenant_id == Event.tenant_id),
            )
            .filter(
                Event.master_event_id.isnot(None),
                master.id.is_(None),
            )
            .count()
        )
        if report.orphaned_occurrences:
            logger.warning(
                "Found orphaned occurrences",
                extra={
                    "tenant_id": self.tenant_id,
                    "count": report.orphaned_occurrences,
                }
            )

        return report

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_master_by_guid(self, guid: str) -> Event:
        """
        Get a recurring master of the tenant by GUID.

        Raises:
            NotFoundError: Malformed GUID, unknown event, or not a master
        """
        uuid_value = Event.try_parse_guid(guid)
        if uuid_value is None:
            raise NotFoundError("Recurring event", guid)

        master = (
            self._events()
            .filter(Event.uuid == uuid_value, Event.is_recurring_master.is_(True))
            .first()
        )
        if not master:
            raise NotFoundError("Recurring event", guid)
        return master

    def get_upcoming_occurrences(
        self,
        master_guid: str,
        count: int = 10,
        now: Optional[datetime] = None
    ) -> List[Event]:
        """Next `count` occurrences of a series starting at or after now."""
        master = self.get_master_by_guid(master_guid)
        now = to_utc(now) or utc_now()
        return (
            self._events()
            .filter(Event.master_event_id == master.id, Event.start_time >= now)
            .order_by(Event.start_time)
            .limit(count)
            .all()
        )

    def get_specific_occurrence(
        self,
        master_guid: str,
        target_date: date
    ) -> Optional[Event]:
        """The series occurrence starting on a given (UTC) calendar date, if any."""
        master = self.get_master_by_guid(master_guid)
        if isinstance(target_date, datetime):
            target_date = to_utc(target_date).date()
        day_start = datetime.combine(target_date, datetime.min.time())
        return (
            self._events()
            .filter(
                Event.master_event_id == master.id,
                Event.start_time >= day_start,
                Event.start_time < day_start + timedelta(days=1),
            )
            .order_by(Event.start_time)
            .first()
        )
