"""Timesheet history (audit) model definitions."""
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class HistoryTarget(str, Enum):
    """Kinds of objects a history event can point at."""

    TIMESHEET = "Timesheet"
    TIMESHEET_ENTRY = "TimesheetEntry"


class HistoryAction(str, Enum):
    """Recorded actions."""

    CREATED = "created"
    UPDATED = "updated"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    DELETED = "deleted"


class HistoryEventCreate(BaseModel):
    """History event to append."""

    user_id: str  # owner of the timesheet
    target_type: HistoryTarget
    target_id: str
    action: HistoryAction
    actor_user_id: Optional[str] = None
    reason: Optional[str] = None
    diff: Optional[dict[str, Any]] = None
    metadata: Optional[dict[str, Any]] = None


class HistoryEvent(HistoryEventCreate):
    """Stored history event."""

    id: str = Field(alias="_id", serialization_alias="id")
    company_id: str
    occurred_at: datetime

    model_config = {"populate_by_name": True}
