"""Per-approver timesheet approval model definitions."""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ApprovalStatus(str, Enum):
    """Decision of one approver on one timesheet."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class TimesheetApprovalCreate(BaseModel):
    """Request body for assigning an approver to a timesheet."""

    timesheet_id: str
    approver_id: str = Field(min_length=1)


class TimesheetApprovalUpdate(BaseModel):
    """Request body for recording an approver's decision."""

    status: ApprovalStatus
    reason: Optional[str] = None


class TimesheetApproval(BaseModel):
    """Stored approval of a timesheet by one approver."""

    id: str = Field(alias="_id", serialization_alias="id")
    company_id: str
    timesheet_id: str
    approver_id: str
    status: ApprovalStatus = ApprovalStatus.PENDING
    reason: Optional[str] = None
    decided_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"populate_by_name": True}
