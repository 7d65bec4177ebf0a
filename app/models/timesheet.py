"""Timesheet, row and entry model definitions."""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class TimesheetStatus(str, Enum):
    """Workflow status of a whole timesheet."""

    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class RowStatus(str, Enum):
    """Workflow status of a timesheet row."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"


class BillableTag(str, Enum):
    """Billing tag of a row."""

    BILLABLE = "billable"
    NON_BILLABLE = "non-billable"
    AUTO = "auto"


class RowLocation(str, Enum):
    """Where the work of a row was done."""

    OFFICE = "Office"
    HOMEWORKING = "Homeworking"
    HYBRID = "Hybrid"


class WorkMode(str, Enum):
    """Work mode stored on entries (mirrors the row location)."""

    OFFICE = "office"
    REMOTE = "remote"
    HYBRID = "hybrid"


class EntryStatus(str, Enum):
    """Fine-grained entry workflow status."""

    SAVED = "SAVED"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    INVOICED = "INVOICED"


class Timesheet(BaseModel):
    """Per-user, per-period timesheet."""

    id: str = Field(alias="_id", serialization_alias="id")
    company_id: str
    user_id: str
    period_start: str  # ISO date
    period_end: str
    status: TimesheetStatus = TimesheetStatus.DRAFT
    submitted_at: Optional[datetime] = None
    submitted_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    approver_id: Optional[str] = None
    total_minutes: int = 0  # roll-up cache
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"populate_by_name": True}


class TimesheetRow(BaseModel):
    """One activity/location/country grouping within a timesheet week."""

    id: str = Field(alias="_id", serialization_alias="id")
    company_id: str
    user_id: str
    timesheet_id: str
    activity_label: str
    time_code_id: str
    billable: BillableTag = BillableTag.AUTO
    location: RowLocation = RowLocation.OFFICE
    country_code: str
    employee_country_code: Optional[str] = None
    status: RowStatus = RowStatus.DRAFT
    locked: bool = False
    sort_order: int = 0
    created_at: datetime
    updated_at: datetime

    model_config = {"populate_by_name": True}


class TimesheetEntry(BaseModel):
    """Minutes logged on one calendar day."""

    id: str = Field(alias="_id", serialization_alias="id")
    company_id: str
    user_id: str
    timesheet_id: Optional[str] = None
    timesheet_row_id: Optional[str] = None
    time_code_id: Optional[str] = None
    day: str  # ISO date
    duration_min: int = 0
    note: Optional[str] = None
    country: Optional[str] = None
    work_mode: WorkMode = WorkMode.OFFICE
    status: EntryStatus = EntryStatus.SAVED
    status_updated_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"populate_by_name": True}


class TimesheetEntryCreate(BaseModel):
    """Request body for adding one day to an existing row."""

    timesheet_row_id: str
    day: str  # ISO date inside the timesheet period
    duration_min: int = Field(gt=0, le=1440)
    note: Optional[str] = None


class EntryUpdate(BaseModel):
    """Entry update model - all fields optional."""

    duration_min: Optional[int] = Field(default=None, ge=0, le=1440)
    note: Optional[str] = None
    status: Optional[EntryStatus] = None

    @field_validator("duration_min", "status")
    @classmethod
    def reject_null(cls, v, info):
        """Omit a field to keep it; an explicit null is not a value."""
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v


class TimesheetReject(BaseModel):
    """Request body for rejecting a timesheet."""

    reason: str
