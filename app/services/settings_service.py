"""Settings adapter - company settings in the shape the week views need."""
import logging
from typing import Optional

from pymongo.errors import PyMongoError

from app.models.company import CompanySettings
from app.models.timesheet import RowLocation
from app.models.week import WeekSettings
from app.services.workflow import normalize_location

logger = logging.getLogger(__name__)

DEFAULT_MAX_WEEKLY_MINUTES = 2400
DEFAULT_AUTO_SUBMIT_AT = "18:00"
DEFAULT_LOCATION = RowLocation.OFFICE
FALLBACK_COUNTRY_CODE = "US"


def normalize_country_code(value: Optional[str]) -> Optional[str]:
    """Upper-case a country code; blank values become None."""
    if value is None:
        return None
    value = value.strip().upper()
    return value or None


def resolve_effective_settings(company_settings: Optional[CompanySettings]) -> WeekSettings:
    """
    Build the effective week settings from optional stored settings.

    Absent settings mean no office constraint, Office as default
    location, the default weekly cap and the default auto-submit time.
    When a default country exists it is always part of the office set.

    Args:
        company_settings: Stored settings, or None when unavailable

    Returns:
        Effective WeekSettings
    """
    if company_settings is None:
        return WeekSettings(
            default_country_code=None,
            default_location=DEFAULT_LOCATION,
            max_weekly_minutes=DEFAULT_MAX_WEEKLY_MINUTES,
            auto_submit_at=DEFAULT_AUTO_SUBMIT_AT,
            office_country_codes=[],
        )

    default_country = normalize_country_code(company_settings.default_country_code)

    office_codes: list[str] = []
    for code in company_settings.office_country_codes:
        code = normalize_country_code(code)
        if code and code not in office_codes:
            office_codes.append(code)
    if default_country and default_country not in office_codes:
        office_codes.append(default_country)

    default_location = DEFAULT_LOCATION
    if company_settings.default_location:
        try:
            default_location = normalize_location(company_settings.default_location)
        except ValueError:
            logger.warning(
                "Ignoring unknown default location %r for company %s",
                company_settings.default_location,
                company_settings.company_id,
            )

    return WeekSettings(
        default_country_code=default_country,
        default_location=default_location,
        max_weekly_minutes=company_settings.max_weekly_minutes or DEFAULT_MAX_WEEKLY_MINUTES,
        auto_submit_at=company_settings.auto_submit_at or DEFAULT_AUTO_SUBMIT_AT,
        office_country_codes=office_codes,
    )


class SettingsService:
    """Reads company settings for the timesheet engine."""

    def __init__(self, db, session=None):
        """Initialize service with database connection."""
        self.db = db
        self.session = session
        self.company_settings = db["company_settings"]

    async def get_company_settings(self, company_id: str) -> Optional[CompanySettings]:
        """
        Look up stored settings of a company.

        A missing document or a failing lookup gives None; callers fall
        back to the defaults through resolve_effective_settings.
        """
        try:
            doc = await self.company_settings.find_one(
                {"company_id": company_id}, session=self.session
            )
        except PyMongoError:
            logger.warning("Company settings lookup failed for %s", company_id, exc_info=True)
            return None

        if not doc:
            return None

        return CompanySettings(
            company_id=doc["company_id"],
            default_country_code=doc.get("default_country_code"),
            default_location=doc.get("default_location"),
            max_weekly_minutes=doc.get("max_weekly_minutes"),
            auto_submit_at=doc.get("auto_submit_at"),
            office_country_codes=doc.get("office_country_codes") or [],
            timezone=doc.get("timezone") or "UTC",
        )

    async def get_week_settings(self, company_id: str) -> WeekSettings:
        """Effective settings of a company for the week views."""
        return resolve_effective_settings(await self.get_company_settings(company_id))
