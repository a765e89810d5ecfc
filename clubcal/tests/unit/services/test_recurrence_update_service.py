"""
Unit tests for RecurrenceUpdateService.

The shared setup is a weekly Monday series: occurrence #1 on the reference
Monday, then ten future Mondays (#2..#11), two of which carry
registrations (#3 with two participants, #6 with one).
"""

import pytest
from datetime import datetime, timedelta

from dateutil.relativedelta import relativedelta

from clubcal.src.models import Event, EventStatus, EventType, RecurrenceStatus, Registration
from clubcal.src.schemas.recurrence import (
    DayOfWeek,
    OccurrenceUpdate,
    RecurrencePattern,
    RecurrenceType,
    UpdateStrategy,
)
from clubcal.src.services.recurrence_update_service import RecurrenceUpdateService


TUESDAY_ONLY = RecurrencePattern(type=RecurrenceType.WEEKLY, days_of_week=[DayOfWeek.TUESDAY])


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def service(test_db_session, test_tenant, recurrence_settings):
    """Create a RecurrenceUpdateService for the default tenant."""
    return RecurrenceUpdateService(test_db_session, test_tenant.id, recurrence_settings)


@pytest.fixture
def monday_series(sample_master, sample_occurrence, weekly_monday_pattern, now):
    """Weekly Monday series with ten future occurrences, two registered."""
    last = now + timedelta(weeks=10)
    master = sample_master(pattern=weekly_monday_pattern, generated_until=last)
    occurrences = [sample_occurrence(master, now, 1)]
    participants = {3: ["Ana Silva", "Ben Okafor"], 6: ["Chloe Martin"]}
    for week in range(1, 11):
        number = week + 1
        occurrences.append(sample_occurrence(
            master,
            now + timedelta(weeks=week),
            number,
            participants=participants.get(number, ()),
        ))
    return master, occurrences


def future_occurrences(db, master, now):
    return (
        db.query(Event)
        .filter(Event.master_event_id == master.id, Event.start_time > now)
        .order_by(Event.start_time)
        .all()
    )


# ============================================================================
# Strategies
# ============================================================================

class TestPreserveRegistrations:
    """Tests for the preserve_registrations strategy."""

    def test_reports_expected_counts(self, service, monday_series, now):
        master, _ = monday_series

        result = service.update_recurrence_pattern(
            master.guid, TUESDAY_ONLY, UpdateStrategy.PRESERVE_REGISTRATIONS, now=now
        )

        assert result.success is True
        assert result.occurrences_deleted == 8
        assert result.occurrences_preserved == 2
        assert result.occurrences_created == 10
        assert result.registrations_affected == 0
        assert result.warnings == [
            "2 events with registrations were preserved and may no longer match the series pattern"
        ]
        assert result.message == (
            "Recurrence pattern updated successfully. Deleted: 8, Created: 10, Preserved: 2"
        )

    def test_registered_occurrences_survive_unchanged(
        self, test_db_session, service, monday_series, now
    ):
        master, occurrences = monday_series
        registered = {
            o.id: (o.start_time, sorted(r.participant_name for r in o.registrations))
            for o in occurrences if o.registrations
        }

        service.update_recurrence_pattern(master.guid, TUESDAY_ONLY, now=now)
        test_db_session.expire_all()

        for occurrence_id, (start, names) in registered.items():
            occurrence = test_db_session.get(Event, occurrence_id)
            assert occurrence is not None
            assert occurrence.start_time == start
            assert occurrence.status == EventStatus.SCHEDULED
            assert sorted(r.participant_name for r in occurrence.registrations) == names

    def test_new_occurrences_follow_new_pattern(
        self, test_db_session, service, monday_series, now
    ):
        master, _ = monday_series

        service.update_recurrence_pattern(master.guid, TUESDAY_ONLY, now=now)

        remaining = future_occurrences(test_db_session, master, now)
        tuesdays = [o for o in remaining if o.start_time.weekday() == 1]
        mondays = [o for o in remaining if o.start_time.weekday() == 0]
        assert len(tuesdays) == 10
        assert len(mondays) == 2
        assert tuesdays[0].start_time == datetime(2026, 3, 3, 9, 0)
        assert min(o.occurrence_number for o in tuesdays) == 7
        numbers = [o.occurrence_number for o in remaining]
        assert len(numbers) == len(set(numbers))

    def test_master_pattern_updated(self, test_db_session, service, monday_series, now):
        master, _ = monday_series

        service.update_recurrence_pattern(master.guid, TUESDAY_ONLY, now=now)
        test_db_session.refresh(master)

        assert master.recurrence.days_of_week == [DayOfWeek.TUESDAY]

    def test_dates_covered_by_preserved_occurrences_skipped(
        self, test_db_session, service, monday_series, now
    ):
        master, _ = monday_series
        pattern = RecurrencePattern(
            type=RecurrenceType.WEEKLY,
            days_of_week=[DayOfWeek.MONDAY, DayOfWeek.TUESDAY],
        )

        result = service.update_recurrence_pattern(master.guid, pattern, now=now)

        assert result.occurrences_created == 18
        starts = [o.start_time for o in future_occurrences(test_db_session, master, now)]
        assert len(starts) == len(set(starts))

    def test_occurrence_limit_counts_from_first_occurrence(
        self, test_db_session, service, monday_series, now
    ):
        master, _ = monday_series
        pattern = RecurrencePattern(
            type=RecurrenceType.WEEKLY,
            days_of_week=[DayOfWeek.TUESDAY],
            max_occurrences=5,
        )

        result = service.update_recurrence_pattern(master.guid, pattern, now=now)

        assert result.success is True
        assert result.occurrences_deleted == 8
        assert result.occurrences_preserved == 2
        # Occurrence #1 is past, so four Tuesdays complete the limit of five
        assert result.occurrences_created == 4
        tuesdays = [
            o for o in future_occurrences(test_db_session, master, now)
            if o.start_time.weekday() == 1
        ]
        assert [o.start_time for o in tuesdays] == [
            datetime(2026, 3, d, 9, 0) for d in (3, 10, 17, 24)
        ]
        assert [o.occurrence_number for o in tuesdays] == [7, 8, 9, 10]

    def test_covered_dates_do_not_use_up_the_limit(
        self, test_db_session, service, monday_series, now
    ):
        master, _ = monday_series
        pattern = RecurrencePattern(
            type=RecurrenceType.WEEKLY,
            days_of_week=[DayOfWeek.MONDAY, DayOfWeek.TUESDAY],
            max_occurrences=5,
        )

        result = service.update_recurrence_pattern(master.guid, pattern, now=now)

        # Monday 16 March is already held by a preserved occurrence
        assert result.occurrences_created == 4
        created = [
            o.start_time for o in future_occurrences(test_db_session, master, now)
            if o.occurrence_number > 6
        ]
        assert created == [
            datetime(2026, 3, 3, 9, 0),
            datetime(2026, 3, 9, 9, 0),
            datetime(2026, 3, 10, 9, 0),
            datetime(2026, 3, 17, 9, 0),
        ]

    def test_conflicts_list_registered_occurrences(self, service, monday_series, now):
        master, occurrences = monday_series

        result = service.update_recurrence_pattern(master.guid, TUESDAY_ONLY, now=now)

        conflicts = {c.start_time: c for c in result.conflicting_occurrences}
        assert len(conflicts) == 2
        first = conflicts[now + timedelta(weeks=2)]
        assert first.registration_count == 2
        assert first.participant_names == ["Ana Silva", "Ben Okafor"]
        assert first.guid.startswith("evt_")


class TestForceUpdate:
    """Tests for the force_update strategy."""

    def test_deletes_everything_in_the_future(
        self, test_db_session, service, monday_series, now
    ):
        master, _ = monday_series

        result = service.update_recurrence_pattern(
            master.guid, TUESDAY_ONLY, UpdateStrategy.FORCE_UPDATE, now=now
        )

        assert result.success is True
        assert result.occurrences_deleted == 10
        assert result.occurrences_preserved == 0
        assert result.occurrences_created == 10
        assert result.registrations_affected == 3
        assert result.warnings == ["All 3 registrations were cancelled due to force update"]
        remaining = future_occurrences(test_db_session, master, now)
        assert all(o.start_time.weekday() == 1 for o in remaining)
        assert test_db_session.query(Registration).count() == 0

    def test_past_occurrences_untouched(self, test_db_session, service, monday_series, now):
        master, occurrences = monday_series

        service.update_recurrence_pattern(
            master.guid, TUESDAY_ONLY, UpdateStrategy.FORCE_UPDATE, now=now
        )

        assert test_db_session.get(Event, occurrences[0].id) is not None


class TestCancelConflicts:
    """Tests for the cancel_conflicts strategy."""

    def test_registered_occurrences_cancelled_in_place(
        self, test_db_session, service, monday_series, now
    ):
        master, occurrences = monday_series
        registered_ids = [o.id for o in occurrences if o.registrations]

        result = service.update_recurrence_pattern(
            master.guid, TUESDAY_ONLY, UpdateStrategy.CANCEL_CONFLICTS, now=now
        )

        assert result.occurrences_deleted == 8
        assert result.occurrences_cancelled == 2
        assert result.occurrences_created == 10
        assert result.registrations_affected == 3
        assert result.warnings == [
            "2 events with registrations were cancelled",
            "3 members will need to re-register",
        ]
        test_db_session.expire_all()
        for occurrence_id in registered_ids:
            assert test_db_session.get(Event, occurrence_id).status == EventStatus.CANCELLED
        assert test_db_session.query(Registration).count() == 3


# ============================================================================
# Preview
# ============================================================================

class TestPreview:
    """Tests for preview_recurrence_update."""

    def test_preview_changes_nothing(self, test_db_session, service, monday_series, now):
        master, _ = monday_series
        before = test_db_session.query(Event).count()

        result = service.preview_recurrence_update(master.guid, TUESDAY_ONLY, now=now)

        assert result.success is True
        assert result.message == (
            "Preview: 8 occurrences to delete, 10 to create, 0 registrations affected"
        )
        test_db_session.expire_all()
        assert test_db_session.query(Event).count() == before
        assert test_db_session.get(Event, master.id).recurrence.days_of_week == [DayOfWeek.MONDAY]

    @pytest.mark.parametrize("strategy", list(UpdateStrategy))
    def test_preview_matches_apply(self, service, monday_series, now, strategy):
        master, _ = monday_series

        preview = service.preview_recurrence_update(master.guid, TUESDAY_ONLY, strategy, now=now)
        applied = service.update_recurrence_pattern(master.guid, TUESDAY_ONLY, strategy, now=now)

        assert applied.success is True
        assert preview.occurrences_created == applied.occurrences_created
        assert preview.occurrences_deleted == applied.occurrences_deleted
        assert preview.occurrences_preserved == applied.occurrences_preserved
        assert preview.occurrences_cancelled == applied.occurrences_cancelled
        assert preview.registrations_affected == applied.registrations_affected
        assert preview.warnings == applied.warnings


# ============================================================================
# Horizon and failures
# ============================================================================

class TestHorizonAndFailures:
    """Tests for horizon handling and failed results."""

    def test_future_horizon_kept(self, service, sample_master, now):
        horizon = now + relativedelta(years=1)
        master = sample_master(generated_until=horizon)

        service.update_recurrence_pattern(master.guid, TUESDAY_ONLY, now=now)

        assert master.generated_until == horizon

    def test_past_horizon_moves_forward(self, service, sample_master, now):
        master = sample_master(generated_until=now - timedelta(days=3))

        result = service.update_recurrence_pattern(master.guid, TUESDAY_ONLY, now=now)

        assert result.occurrences_created == 27
        assert master.generated_until == now + relativedelta(months=6)

    def test_completed_series_reactivated(self, service, sample_master, now):
        master = sample_master(recurrence_status=RecurrenceStatus.COMPLETED)

        service.update_recurrence_pattern(master.guid, TUESDAY_ONLY, now=now)

        assert master.recurrence_status == RecurrenceStatus.ACTIVE

    def test_unknown_master_reported(self, service, monday_series, now):
        master, occurrences = monday_series

        for guid in ("bogus", occurrences[1].guid):
            result = service.update_recurrence_pattern(guid, TUESDAY_ONLY, now=now)
            assert result.success is False
            assert "not found" in result.message

        preview = service.preview_recurrence_update("bogus", TUESDAY_ONLY, now=now)
        assert preview.success is False

    def test_invalid_pattern_reported(self, test_db_session, service, monday_series, now):
        master, _ = monday_series
        before = test_db_session.query(Event).count()

        for pattern in (
            RecurrencePattern(type=RecurrenceType.DAILY, interval=0),
            RecurrencePattern(type=RecurrenceType.NONE),
        ):
            result = service.update_recurrence_pattern(master.guid, pattern, now=now)
            assert result.success is False
            assert result.message.startswith("Invalid recurrence pattern")

        assert test_db_session.query(Event).count() == before

    def test_store_failure_rolls_back(
        self, mocker, test_db_session, service, monday_series, now
    ):
        master, _ = monday_series
        before = test_db_session.query(Event).count()
        mocker.patch.object(test_db_session, "commit", side_effect=RuntimeError("disk full"))

        result = service.update_recurrence_pattern(
            master.guid, TUESDAY_ONLY, UpdateStrategy.FORCE_UPDATE, now=now
        )

        assert result.success is False
        assert result.message == "Error updating recurrence pattern: disk full"
        assert test_db_session.query(Event).count() == before
        assert test_db_session.query(Registration).count() == 3


# ============================================================================
# Single occurrence edits
# ============================================================================

class TestUpdateSingleOccurrence:
    """Tests for update_single_occurrence."""

    def test_updates_only_that_occurrence(self, test_db_session, service, monday_series):
        master, occurrences = monday_series
        target, neighbour = occurrences[4], occurrences[5]

        result = service.update_single_occurrence(
            target.guid,
            OccurrenceUpdate(title="Junior Squad (indoor)", facility_ref="hall-1",
                             event_type="workshop"),
            updated_by="admin@club.example",
        )

        assert result.success is True
        assert result.message == "Single occurrence updated successfully"
        test_db_session.expire_all()
        edited = test_db_session.get(Event, target.id)
        assert edited.title == "Junior Squad (indoor)"
        assert edited.facility_ref == "hall-1"
        assert edited.event_type == EventType.WORKSHOP
        assert edited.is_modified_from_series is True
        assert edited.updated_by == "admin@club.example"
        assert test_db_session.get(Event, neighbour.id).title == master.title
        assert test_db_session.get(Event, master.id).title == "Junior Squad Training"

    def test_unset_fields_untouched(self, test_db_session, service, monday_series):
        _, occurrences = monday_series
        target = occurrences[4]
        original_start = target.start_time

        service.update_single_occurrence(target.guid, OccurrenceUpdate(max_capacity=20))
        test_db_session.expire_all()

        edited = test_db_session.get(Event, target.id)
        assert edited.max_capacity == 20
        assert edited.start_time == original_start

    def test_rejects_end_before_start(self, service, monday_series):
        _, occurrences = monday_series
        target = occurrences[4]

        result = service.update_single_occurrence(
            target.guid, OccurrenceUpdate(end_time=target.start_time - timedelta(hours=1))
        )

        assert result.success is False

    def test_rejects_master_and_unknown(self, service, monday_series):
        master, _ = monday_series

        assert service.update_single_occurrence(master.guid, OccurrenceUpdate()).success is False
        assert service.update_single_occurrence("evt_nope", OccurrenceUpdate()).success is False

    def test_rejects_unknown_event_type(self, service, monday_series):
        _, occurrences = monday_series

        result = service.update_single_occurrence(
            occurrences[4].guid, OccurrenceUpdate(event_type="rave")
        )

        assert result.success is False
        assert result.message == "Invalid event type: rave"
