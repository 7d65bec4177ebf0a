"""Status rules for timesheets, rows and entries.

Pure functions and lookup tables only; the services apply them.
"""
from typing import Iterable, Optional, Union

from app.exceptions import ValidationError
from app.models.timesheet import (
    EntryStatus,
    RowLocation,
    RowStatus,
    TimesheetStatus,
    WorkMode,
)

ENTRY_TRANSITIONS: dict[EntryStatus, frozenset[EntryStatus]] = {
    EntryStatus.SAVED: frozenset({EntryStatus.PENDING_APPROVAL}),
    EntryStatus.PENDING_APPROVAL: frozenset(
        {EntryStatus.SAVED, EntryStatus.APPROVED, EntryStatus.REJECTED}
    ),
    EntryStatus.REJECTED: frozenset({EntryStatus.SAVED, EntryStatus.PENDING_APPROVAL}),
    EntryStatus.APPROVED: frozenset({EntryStatus.INVOICED}),
    EntryStatus.INVOICED: frozenset(),
}

# Entries in these states only accept status changes.
ENTRY_FROZEN_STATUSES = frozenset({EntryStatus.APPROVED, EntryStatus.INVOICED})

TIMESHEET_TRANSITIONS: dict[TimesheetStatus, frozenset[TimesheetStatus]] = {
    TimesheetStatus.DRAFT: frozenset({TimesheetStatus.SUBMITTED}),
    TimesheetStatus.SUBMITTED: frozenset({TimesheetStatus.APPROVED, TimesheetStatus.REJECTED}),
    TimesheetStatus.REJECTED: frozenset({TimesheetStatus.SUBMITTED}),
    TimesheetStatus.APPROVED: frozenset(),
}

# Higher rank wins when several statuses describe the same row.
ROW_STATUS_RANK: dict[RowStatus, int] = {
    RowStatus.DRAFT: 0,
    RowStatus.SUBMITTED: 1,
    RowStatus.REJECTED: 2,
    RowStatus.APPROVED: 3,
}

ENTRY_TO_ROW_STATUS: dict[EntryStatus, RowStatus] = {
    EntryStatus.SAVED: RowStatus.DRAFT,
    EntryStatus.PENDING_APPROVAL: RowStatus.SUBMITTED,
    EntryStatus.REJECTED: RowStatus.REJECTED,
    EntryStatus.APPROVED: RowStatus.APPROVED,
    EntryStatus.INVOICED: RowStatus.APPROVED,
}

TIMESHEET_TO_ROW_STATUS: dict[TimesheetStatus, RowStatus] = {
    TimesheetStatus.DRAFT: RowStatus.DRAFT,
    TimesheetStatus.SUBMITTED: RowStatus.SUBMITTED,
    TimesheetStatus.REJECTED: RowStatus.REJECTED,
    TimesheetStatus.APPROVED: RowStatus.APPROVED,
}

LOCKED_ROW_STATUSES = frozenset({RowStatus.SUBMITTED, RowStatus.APPROVED})

LOCATION_TO_WORK_MODE: dict[RowLocation, WorkMode] = {
    RowLocation.OFFICE: WorkMode.OFFICE,
    RowLocation.HOMEWORKING: WorkMode.REMOTE,
    RowLocation.HYBRID: WorkMode.HYBRID,
}

WORK_MODE_TO_LOCATION: dict[WorkMode, RowLocation] = {
    mode: location for location, mode in LOCATION_TO_WORK_MODE.items()
}

_LOCATION_ALIASES: dict[str, RowLocation] = {
    "office": RowLocation.OFFICE,
    "homeworking": RowLocation.HOMEWORKING,
    "remote": RowLocation.HOMEWORKING,
    "hybrid": RowLocation.HYBRID,
}


def ensure_entry_transition(current: EntryStatus, target: EntryStatus) -> None:
    """
    Validate an entry status change against the transition table.

    Raises:
        ValidationError: If the pair is not in the table
    """
    current = EntryStatus(current)
    target = EntryStatus(target)
    if target not in ENTRY_TRANSITIONS[current]:
        raise ValidationError(
            f"Invalid entry status transition: {current.value} -> {target.value}"
        )


def ensure_timesheet_transition(current: TimesheetStatus, target: TimesheetStatus) -> None:
    """
    Validate a timesheet status change against the transition table.

    Raises:
        ValidationError: If the pair is not in the table
    """
    current = TimesheetStatus(current)
    target = TimesheetStatus(target)
    if target not in TIMESHEET_TRANSITIONS[current]:
        raise ValidationError(
            f"Timesheet is in {current.value} status and cannot move to {target.value}"
        )


def derive_row_status(
    entry_statuses: Iterable[EntryStatus],
    timesheet_status: Optional[TimesheetStatus] = None,
) -> RowStatus:
    """
    Derive a row status from its entries and the parent timesheet.

    The highest ranked candidate wins:
    approved > rejected > submitted > draft.

    Example:
        >>> derive_row_status([EntryStatus.SAVED], TimesheetStatus.SUBMITTED)
        <RowStatus.SUBMITTED: 'submitted'>
    """
    candidates = [ENTRY_TO_ROW_STATUS[EntryStatus(status)] for status in entry_statuses]
    if timesheet_status is not None:
        candidates.append(TIMESHEET_TO_ROW_STATUS[TimesheetStatus(timesheet_status)])
    return max(candidates, key=ROW_STATUS_RANK.__getitem__, default=RowStatus.DRAFT)


def is_locked_status(status: RowStatus) -> bool:
    """Rows in submitted or approved status are locked."""
    return RowStatus(status) in LOCKED_ROW_STATUSES


def normalize_location(value: Union[str, RowLocation]) -> RowLocation:
    """
    Map a client or legacy location spelling to a RowLocation.

    Accepts the location values in any case and the entry work modes
    ("office", "remote", "hybrid").

    Raises:
        ValidationError: If the value is not a known location
    """
    if isinstance(value, RowLocation):
        return value
    key = (value or "").strip().lower()
    if key not in _LOCATION_ALIASES:
        raise ValidationError(f"Unknown location: {value!r}")
    return _LOCATION_ALIASES[key]


def location_for_work_mode(work_mode: Union[str, WorkMode, None]) -> RowLocation:
    """Row location of a legacy entry work mode (office when unknown)."""
    try:
        return WORK_MODE_TO_LOCATION[WorkMode(work_mode)]
    except ValueError:
        return RowLocation.OFFICE


def work_mode_for_location(location: RowLocation) -> WorkMode:
    """Entry work mode mirroring a row location."""
    return LOCATION_TO_WORK_MODE[RowLocation(location)]
