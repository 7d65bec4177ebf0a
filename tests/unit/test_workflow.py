"""Tests for the status rules."""
import itertools

import pytest

from app.models.timesheet import EntryStatus, RowLocation, RowStatus, TimesheetStatus, WorkMode


ALLOWED_ENTRY_TRANSITIONS = {
    (EntryStatus.SAVED, EntryStatus.PENDING_APPROVAL),
    (EntryStatus.PENDING_APPROVAL, EntryStatus.SAVED),
    (EntryStatus.PENDING_APPROVAL, EntryStatus.APPROVED),
    (EntryStatus.PENDING_APPROVAL, EntryStatus.REJECTED),
    (EntryStatus.REJECTED, EntryStatus.SAVED),
    (EntryStatus.REJECTED, EntryStatus.PENDING_APPROVAL),
    (EntryStatus.APPROVED, EntryStatus.INVOICED),
}


class TestEntryTransitions:
    """Tests for ensure_entry_transition."""

    @pytest.mark.parametrize(
        "current,target", list(itertools.product(EntryStatus, EntryStatus))
    )
    def test_transition_table(self, current, target):
        """Test every pair is allowed exactly when it is in the table."""
        from app.exceptions import ValidationError
        from app.services.workflow import ensure_entry_transition

        if (current, target) in ALLOWED_ENTRY_TRANSITIONS:
            ensure_entry_transition(current, target)
        else:
            with pytest.raises(ValidationError, match="Invalid entry status transition"):
                ensure_entry_transition(current, target)

    def test_invoiced_is_terminal(self):
        from app.services.workflow import ENTRY_TRANSITIONS

        assert ENTRY_TRANSITIONS[EntryStatus.INVOICED] == frozenset()

    def test_accepts_raw_values(self):
        from app.services.workflow import ensure_entry_transition

        ensure_entry_transition("APPROVED", "INVOICED")


class TestTimesheetTransitions:
    """Tests for ensure_timesheet_transition."""

    def test_submitted_can_be_approved_or_rejected(self):
        from app.services.workflow import ensure_timesheet_transition

        ensure_timesheet_transition(TimesheetStatus.SUBMITTED, TimesheetStatus.APPROVED)
        ensure_timesheet_transition(TimesheetStatus.SUBMITTED, TimesheetStatus.REJECTED)

    def test_rejected_can_be_resubmitted(self):
        from app.services.workflow import ensure_timesheet_transition

        ensure_timesheet_transition(TimesheetStatus.REJECTED, TimesheetStatus.SUBMITTED)

    @pytest.mark.parametrize(
        "current,target",
        [
            (TimesheetStatus.DRAFT, TimesheetStatus.APPROVED),
            (TimesheetStatus.DRAFT, TimesheetStatus.REJECTED),
            (TimesheetStatus.APPROVED, TimesheetStatus.REJECTED),
            (TimesheetStatus.APPROVED, TimesheetStatus.SUBMITTED),
        ],
    )
    def test_invalid_transitions(self, current, target):
        from app.exceptions import ValidationError
        from app.services.workflow import ensure_timesheet_transition

        with pytest.raises(ValidationError, match="cannot move to"):
            ensure_timesheet_transition(current, target)


class TestDeriveRowStatus:
    """Tests for derive_row_status."""

    def test_no_candidates_is_draft(self):
        from app.services.workflow import derive_row_status

        assert derive_row_status([]) == RowStatus.DRAFT

    def test_approved_wins(self):
        from app.services.workflow import derive_row_status

        status = derive_row_status(
            [EntryStatus.SAVED, EntryStatus.REJECTED, EntryStatus.APPROVED],
            TimesheetStatus.SUBMITTED,
        )

        assert status == RowStatus.APPROVED

    def test_invoiced_counts_as_approved(self):
        from app.services.workflow import derive_row_status

        assert derive_row_status([EntryStatus.INVOICED]) == RowStatus.APPROVED

    def test_rejected_beats_submitted(self):
        from app.services.workflow import derive_row_status

        status = derive_row_status([EntryStatus.PENDING_APPROVAL], TimesheetStatus.REJECTED)

        assert status == RowStatus.REJECTED

    def test_timesheet_status_lifts_saved_entries(self):
        from app.services.workflow import derive_row_status

        status = derive_row_status([EntryStatus.SAVED], TimesheetStatus.SUBMITTED)

        assert status == RowStatus.SUBMITTED

    def test_lock_follows_status(self):
        from app.services.workflow import is_locked_status

        assert is_locked_status(RowStatus.SUBMITTED) is True
        assert is_locked_status(RowStatus.APPROVED) is True
        assert is_locked_status(RowStatus.DRAFT) is False
        assert is_locked_status(RowStatus.REJECTED) is False


class TestLocations:
    """Tests for location and work mode mapping."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("Office", RowLocation.OFFICE),
            ("office", RowLocation.OFFICE),
            ("HOMEWORKING", RowLocation.HOMEWORKING),
            ("remote", RowLocation.HOMEWORKING),
            (" Hybrid ", RowLocation.HYBRID),
        ],
    )
    def test_normalize_location(self, value, expected):
        from app.services.workflow import normalize_location

        assert normalize_location(value) == expected

    def test_normalize_unknown_location(self):
        from app.exceptions import ValidationError
        from app.services.workflow import normalize_location

        with pytest.raises(ValidationError, match="Unknown location"):
            normalize_location("Beach")

    def test_work_mode_round_trip(self):
        from app.services.workflow import location_for_work_mode, work_mode_for_location

        assert work_mode_for_location(RowLocation.HOMEWORKING) == WorkMode.REMOTE
        assert location_for_work_mode("remote") == RowLocation.HOMEWORKING
        assert location_for_work_mode("hybrid") == RowLocation.HYBRID

    def test_unknown_work_mode_is_office(self):
        from app.services.workflow import location_for_work_mode

        assert location_for_work_mode(None) == RowLocation.OFFICE
        assert location_for_work_mode("spaceship") == RowLocation.OFFICE
