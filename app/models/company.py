"""Company settings and time-code catalog model definitions."""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class BillableDefault(str, Enum):
    """Billing default configured on a time code."""

    BILLABLE = "BILLABLE"
    NON_BILLABLE = "NON_BILLABLE"
    AUTO = "AUTO"


class CompanySettings(BaseModel):
    """Timesheet-relevant company settings as stored."""

    company_id: str
    default_country_code: Optional[str] = None
    default_location: Optional[str] = None
    max_weekly_minutes: Optional[int] = None
    auto_submit_at: Optional[str] = None  # "HH:MM"
    office_country_codes: list[str] = []
    timezone: str = "UTC"


class TimeCode(BaseModel):
    """Activity / time-code catalog entry."""

    id: str = Field(alias="_id", serialization_alias="id")
    company_id: str
    code: str
    name: Optional[str] = None
    billable_default: BillableDefault = BillableDefault.AUTO
    type: Optional[str] = None  # "billable" or "non-billable"

    model_config = {"populate_by_name": True}
