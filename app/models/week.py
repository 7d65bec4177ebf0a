"""Week view and week upsert model definitions."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from app.models.timesheet import BillableTag, RowLocation, RowStatus, TimesheetStatus


class WeekEntryInput(BaseModel):
    """Minutes for one day of a row, as sent by the client."""

    day: str
    minutes: float = Field(default=0, allow_inf_nan=False)
    note: Optional[str] = None


class WeekRowInput(BaseModel):
    """One desired row of a week upsert."""

    id: Optional[str] = None
    activity_label: str = Field(min_length=1)
    time_code_id: str
    billable: BillableTag = BillableTag.AUTO
    location: Optional[str] = None  # normalized by the reconciler
    country_code: Optional[str] = None
    employee_country_code: Optional[str] = None
    status: Optional[RowStatus] = None
    locked: Optional[bool] = None  # ignored, the server owns the lock
    entries: list[WeekEntryInput] = []


class WeekUpsert(BaseModel):
    """Week upsert request body."""

    rows: list[WeekRowInput] = []


class WeekSubmit(BaseModel):
    """Week submit request body."""

    force: bool = False


class WeekSettings(BaseModel):
    """Effective company settings for the week grid."""

    default_country_code: Optional[str] = None
    default_location: RowLocation = RowLocation.OFFICE
    max_weekly_minutes: int
    auto_submit_at: Optional[str] = None
    office_country_codes: list[str] = []


class Rejection(BaseModel):
    """Last rejection event of a timesheet."""

    reason: Optional[str] = None
    actor_id: Optional[str] = None
    actor_name: Optional[str] = None
    occurred_at: datetime


class WeekEntryView(BaseModel):
    """Minutes for one day of a row, as returned to the client."""

    day: str
    minutes: int
    note: Optional[str] = None


class WeekRowView(BaseModel):
    """One row of the week view."""

    id: str
    activity_label: str
    time_code_id: str
    billable: BillableTag
    location: RowLocation
    country_code: str
    employee_country_code: Optional[str] = None
    status: RowStatus
    locked: bool
    sort_order: int
    entries: list[WeekEntryView] = []
    rejection: Optional[Rejection] = None


class WeekView(BaseModel):
    """A user's week: timesheet status, rows with entries and settings."""

    timesheet_id: str
    week_start: str
    week_end: str
    status: TimesheetStatus
    total_minutes: int
    rows: list[WeekRowView]
    settings: WeekSettings
    rejection: Optional[Rejection] = None
