"""
Recurrence update service: reconcile a series with a changed pattern.

When an administrator changes the pattern of a recurring master, the
occurrences already materialized in the future no longer match it. This
service computes a reconciliation plan against those occurrences and either
reports it (preview) or applies it in a single transaction.

Strategies for future occurrences that carry registrations:
- preserve_registrations: keep them untouched, delete the others, skip new
  occurrences on dates a kept occurrence already covers
- force_update: delete every future occurrence, registrations included
- cancel_conflicts: set them to cancelled in place, delete the others

Design:
- Preview and apply share _build_plan (same generator call, same window),
  so a preview reports exactly what an apply would do if nothing changes in
  between.
- Expected failures (unknown GUID, invalid pattern, store errors) come back
  as a failed ReconciliationResult; nothing here raises to the caller.
- The master's horizon never moves backwards.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from clubcal.src.config.settings import RecurrenceSettings, get_settings
from clubcal.src.models.event import Event, EventStatus, EventType, RecurrenceStatus
from clubcal.src.schemas.recurrence import (
    ConflictingOccurrence,
    OccurrenceUpdate,
    ReconciliationResult,
    RecurrencePattern,
    UpdateStrategy,
)
from clubcal.src.services.exceptions import NotFoundError, ValidationError
from clubcal.src.services.occurrence_generator import validate_pattern
from clubcal.src.services.recurrence_manager import RecurrenceManager
from clubcal.src.utils.logging_config import get_logger
from clubcal.src.utils.time_utils import to_utc, utc_now


logger = get_logger("services")

# Occurrence columns an explicit None must not clear
REQUIRED_FIELDS = {"title", "event_type", "start_time", "end_time", "max_capacity", "allow_waitlist"}


@dataclass
class ReconciliationPlan:
    """
    Changes a pattern update would make to a series.

    Attributes:
        master: The recurring master
        pattern: The new pattern
        strategy: Strategy for registered occurrences
        window_start: Forward window start (exclusive of now)
        window_end: Forward window end, also the resulting horizon candidate
        to_delete: Future occurrences to delete
        to_preserve: Registered occurrences kept untouched
        to_cancel: Registered occurrences to set to cancelled
        to_create: New transient occurrences to insert
        registrations_affected: Registrations lost or cancelled by the plan
        conflicts: Registered future occurrences, for operator review
    """
    master: Event
    pattern: RecurrencePattern
    strategy: UpdateStrategy
    window_start: datetime
    window_end: datetime
    to_delete: List[Event] = field(default_factory=list)
    to_preserve: List[Event] = field(default_factory=list)
    to_cancel: List[Event] = field(default_factory=list)
    to_create: List[Event] = field(default_factory=list)
    registrations_affected: int = 0
    conflicts: List[ConflictingOccurrence] = field(default_factory=list)

    @property
    def warnings(self) -> List[str]:
        warnings = []
        if self.strategy == UpdateStrategy.PRESERVE_REGISTRATIONS and self.to_preserve:
            warnings.append(
                f"{len(self.to_preserve)} events with registrations were preserved "
                f"and may no longer match the series pattern"
            )
        elif self.strategy == UpdateStrategy.FORCE_UPDATE and self.registrations_affected:
            warnings.append(
                f"All {self.registrations_affected} registrations were cancelled "
                f"due to force update"
            )
        elif self.strategy == UpdateStrategy.CANCEL_CONFLICTS and self.to_cancel:
            warnings.append(
                f"{len(self.to_cancel)} events with registrations were cancelled"
            )
            warnings.append(
                f"{self.registrations_affected} members will need to re-register"
            )
        return warnings

    def to_result(self, message: str) -> ReconciliationResult:
        return ReconciliationResult(
            success=True,
            message=message,
            occurrences_deleted=len(self.to_delete),
            occurrences_created=len(self.to_create),
            occurrences_preserved=len(self.to_preserve),
            occurrences_cancelled=len(self.to_cancel),
            registrations_affected=self.registrations_affected,
            warnings=self.warnings,
            conflicting_occurrences=self.conflicts,
        )


class RecurrenceUpdateService:
    """
    Service for pattern changes and one-off occurrence edits.

    Usage:
        >>> service = RecurrenceUpdateService(db, tenant_id=tenant.id)
        >>> preview = service.preview_recurrence_update(master.guid, new_pattern)
        >>> result = service.update_recurrence_pattern(
        ...     master.guid, new_pattern, UpdateStrategy.PRESERVE_REGISTRATIONS
        ... )
    """

    def __init__(
        self,
        db: Session,
        tenant_id: int,
        settings: Optional[RecurrenceSettings] = None,
        manager: Optional[RecurrenceManager] = None
    ):
        self.db = db
        self.tenant_id = tenant_id
        self.settings = settings or get_settings()
        self.manager = manager or RecurrenceManager(db, tenant_id, self.settings)

    def preview_recurrence_update(
        self,
        master_guid: str,
        new_pattern: RecurrencePattern,
        strategy: UpdateStrategy = UpdateStrategy.PRESERVE_REGISTRATIONS,
        now: Optional[datetime] = None
    ) -> ReconciliationResult:
        """
        Report what a pattern update would do, without changing anything.

        Args:
            master_guid: Master event GUID (evt_xxx)
            new_pattern: Proposed pattern
            strategy: Strategy the update would use
            now: Reference time (defaults to the current UTC time)

        Returns:
            ReconciliationResult with the planned counts and conflicts
        """
        try:
            plan = self._build_plan(master_guid, new_pattern, strategy, now)
        except NotFoundError as e:
            return ReconciliationResult.failure(str(e))
        except ValidationError as e:
            return ReconciliationResult.failure(f"Invalid recurrence pattern: {e.message}")
        except Exception as e:
            logger.error(
                f"Error previewing recurrence update: {e}",
                extra={"tenant_id": self.tenant_id, "master_guid": master_guid},
                exc_info=True
            )
            return ReconciliationResult.failure(f"Error previewing recurrence update: {e}")

        return plan.to_result(
            f"Preview: {len(plan.to_delete)} occurrences to delete, "
            f"{len(plan.to_create)} to create, "
            f"{plan.registrations_affected} registrations affected"
        )

    def update_recurrence_pattern(
        self,
        master_guid: str,
        new_pattern: RecurrencePattern,
        strategy: UpdateStrategy = UpdateStrategy.PRESERVE_REGISTRATIONS,
        now: Optional[datetime] = None
    ) -> ReconciliationResult:
        """
        Change a series' pattern and reconcile its future occurrences.

        All deletions, cancellations, insertions and the master update are
        committed together; on any error everything is rolled back and a
        failed result is returned.

        Args:
            master_guid: Master event GUID (evt_xxx)
            new_pattern: New pattern
            strategy: How to treat future occurrences with registrations
            now: Reference time (defaults to the current UTC time)

        Returns:
            ReconciliationResult with the applied counts and conflicts
        """
        now = to_utc(now) or utc_now()

        try:
            plan = self._build_plan(master_guid, new_pattern, strategy, now)
            self._apply_plan(plan, now)
            self.db.commit()
        except NotFoundError as e:
            self.db.rollback()
            return ReconciliationResult.failure(str(e))
        except ValidationError as e:
            self.db.rollback()
            return ReconciliationResult.failure(f"Invalid recurrence pattern: {e.message}")
        except Exception as e:
            self.db.rollback()
            logger.error(
                f"Error updating recurrence pattern: {e}",
                extra={"tenant_id": self.tenant_id, "master_guid": master_guid},
                exc_info=True
            )
            return ReconciliationResult.failure(f"Error updating recurrence pattern: {e}")

        logger.info(
            "Updated recurrence pattern",
            extra={
                "tenant_id": self.tenant_id,
                "master_guid": master_guid,
                "strategy": strategy.value,
                "deleted": len(plan.to_delete),
                "created": len(plan.to_create),
                "preserved": len(plan.to_preserve),
                "cancelled": len(plan.to_cancel),
            }
        )
        return plan.to_result(
            f"Recurrence pattern updated successfully. "
            f"Deleted: {len(plan.to_delete)}, "
            f"Created: {len(plan.to_create)}, "
            f"Preserved: {len(plan.to_preserve)}"
        )

    def update_single_occurrence(
        self,
        occurrence_guid: str,
        fields: OccurrenceUpdate,
        updated_by: Optional[str] = None
    ) -> ReconciliationResult:
        """
        Edit one occurrence without touching its series.

        Only fields explicitly set on `fields` are applied. The occurrence is
        flagged as modified from its series.

        Args:
            occurrence_guid: Occurrence GUID (evt_xxx)
            fields: Field changes
            updated_by: Audit user reference

        Returns:
            ReconciliationResult (success flag and message only)
        """
        uuid_value = Event.try_parse_guid(occurrence_guid)
        occurrence = None
        if uuid_value is not None:
            occurrence = (
                self.db.query(Event)
                .filter(Event.tenant_id == self.tenant_id, Event.uuid == uuid_value)
                .first()
            )
        if occurrence is None:
            return ReconciliationResult.failure("Event occurrence not found")
        if not occurrence.is_occurrence:
            return ReconciliationResult.failure(
                "Event is not an occurrence of a series; edit the series instead"
            )

        changes = fields.model_dump(exclude_unset=True)

        if "event_type" in changes and changes["event_type"] is not None:
            try:
                changes["event_type"] = EventType(changes["event_type"])
            except ValueError:
                return ReconciliationResult.failure(
                    f"Invalid event type: {changes['event_type']}"
                )

        for key in ("start_time", "end_time"):
            if key in changes:
                changes[key] = to_utc(changes[key])

        start = changes.get("start_time") or occurrence.start_time
        end = changes.get("end_time") or occurrence.end_time
        if end <= start:
            return ReconciliationResult.failure("End time must be after start time")

        try:
            for key, value in changes.items():
                if key in REQUIRED_FIELDS and value is None:
                    continue
                setattr(occurrence, key, value)
            occurrence.is_modified_from_series = True
            occurrence.updated_at = utc_now()
            if updated_by:
                occurrence.updated_by = updated_by
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(
                f"Error updating single occurrence: {e}",
                extra={"tenant_id": self.tenant_id, "occurrence_guid": occurrence_guid},
                exc_info=True
            )
            return ReconciliationResult.failure(f"Error updating single occurrence: {e}")

        logger.info(
            "Updated single occurrence",
            extra={
                "tenant_id": self.tenant_id,
                "occurrence_guid": occurrence_guid,
                "fields": sorted(changes),
            }
        )
        return ReconciliationResult(
            success=True,
            message="Single occurrence updated successfully"
        )

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def _forward_window(self, master: Event, now: datetime):
        """
        Window new occurrences are generated in.

        Up to the current horizon when it lies in the future; otherwise one
        initial generation span from now.
        """
        horizon = to_utc(master.generated_until)
        window_start = now + timedelta(microseconds=1)
        if horizon is not None and horizon > window_start:
            return window_start, horizon
        return window_start, now + relativedelta(months=self.settings.initial_generation_months)

    def _build_plan(
        self,
        master_guid: str,
        new_pattern: RecurrencePattern,
        strategy: UpdateStrategy,
        now: Optional[datetime]
    ) -> ReconciliationPlan:
        """
        Compute the reconciliation plan for a pattern change (read-only).

        Raises:
            NotFoundError: Unknown or malformed master GUID
            ValidationError: Pattern cannot be generated
        """
        now = to_utc(now) or utc_now()
        master = self.manager.get_master_by_guid(master_guid)

        if new_pattern is None or not new_pattern.is_recurring:
            raise ValidationError(
                "A series pattern update requires a recurring pattern type",
                field="type"
            )
        validate_pattern(new_pattern)

        future = (
            self.db.query(Event)
            .options(selectinload(Event.registrations))
            .filter(
                Event.tenant_id == self.tenant_id,
                Event.master_event_id == master.id,
                Event.start_time > now,
            )
            .order_by(Event.start_time)
            .all()
        )
        registered = [e for e in future if e.registrations]
        unregistered = [e for e in future if not e.registrations]

        window_start, window_end = self._forward_window(master, now)
        plan = ReconciliationPlan(
            master=master,
            pattern=new_pattern,
            strategy=strategy,
            window_start=window_start,
            window_end=window_end,
            conflicts=[self._conflict(e) for e in registered],
        )

        if strategy == UpdateStrategy.FORCE_UPDATE:
            plan.to_delete = list(future)
            plan.registrations_affected = sum(len(e.registrations) for e in future)
        elif strategy == UpdateStrategy.CANCEL_CONFLICTS:
            plan.to_delete = unregistered
            plan.to_cancel = registered
            plan.registrations_affected = sum(len(e.registrations) for e in registered)
        else:
            plan.to_delete = unregistered
            plan.to_preserve = registered

        past_max = (
            self.db.query(func.max(Event.occurrence_number))
            .filter(Event.master_event_id == master.id, Event.start_time <= now)
            .scalar()
        ) or 0
        survivor_numbers = [past_max]
        survivor_numbers.extend(
            e.occurrence_number or 0 for e in plan.to_preserve + plan.to_cancel
        )

        # max_occurrences is applied after covered dates are dropped, counted
        # from the series' first occurrence
        candidates = self.manager.generate_occurrences(
            master,
            window_start,
            window_end,
            pattern=new_pattern.model_copy(update={"max_occurrences": None}),
            starting_number=past_max + 1,
        )

        if strategy == UpdateStrategy.PRESERVE_REGISTRATIONS and plan.to_preserve:
            covered = {to_utc(e.start_time).date() for e in plan.to_preserve}
            candidates = [c for c in candidates if c.start_time.date() not in covered]

        if new_pattern.max_occurrences is not None:
            candidates = candidates[:max(new_pattern.max_occurrences - past_max, 0)]

        self._renumber(candidates, max(survivor_numbers) + 1)
        plan.to_create = candidates
        return plan

    @staticmethod
    def _renumber(occurrences: List[Event], first: int) -> None:
        """Close numbering gaps left by skipped candidates."""
        for offset, occurrence in enumerate(occurrences):
            occurrence.occurrence_number = first + offset

    @staticmethod
    def _conflict(occurrence: Event) -> ConflictingOccurrence:
        return ConflictingOccurrence(
            guid=occurrence.guid,
            title=occurrence.title,
            start_time=occurrence.start_time,
            registration_count=len(occurrence.registrations),
            participant_names=[
                r.participant_name for r in occurrence.registrations if r.participant_name
            ],
        )

    def _apply_plan(self, plan: ReconciliationPlan, now: datetime) -> None:
        """Stage every change of a plan in the session (caller commits)."""
        for occurrence in plan.to_delete:
            self.db.delete(occurrence)
        self.db.flush()

        for occurrence in plan.to_cancel:
            occurrence.status = EventStatus.CANCELLED
            occurrence.updated_at = now

        self.db.add_all(plan.to_create)

        master = plan.master
        master.recurrence = plan.pattern
        master.updated_at = now
        if master.recurrence_status == RecurrenceStatus.COMPLETED:
            master.recurrence_status = RecurrenceStatus.ACTIVE

        horizon = to_utc(master.generated_until)
        if horizon is None or plan.window_end > horizon:
            master.generated_until = plan.window_end
