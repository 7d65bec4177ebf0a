"""Legacy backfill - groups flat per-day entries into timesheet rows."""
import logging
from datetime import datetime
from typing import Optional

from app.models.company import BillableDefault, TimeCode
from app.models.timesheet import BillableTag, EntryStatus, RowLocation, TimesheetStatus
from app.models.week import WeekSettings
from app.services.directory_service import DirectoryService
from app.services.settings_service import FALLBACK_COUNTRY_CODE, normalize_country_code
from app.services.store import TimesheetStore, utcnow
from app.services.workflow import (
    derive_row_status,
    is_locked_status,
    location_for_work_mode,
    work_mode_for_location,
)

logger = logging.getLogger(__name__)

_NON_BILLABLE_TYPES = {"non-billable", "non_billable", "nonbillable"}

# Legacy entries logged without a time code land on one row under this code.
UNASSIGNED_TIME_CODE = "unassigned"
UNASSIGNED_LABEL = "Unassigned time"


def resolve_default_billable(time_code: Optional[TimeCode]) -> BillableTag:
    """
    Billing tag a new row gets from its time code.

    AUTO resolves to billable unless the catalog entry itself is typed
    non-billable. Unknown time codes count as AUTO.
    """
    if time_code is None:
        return BillableTag.BILLABLE
    if time_code.billable_default == BillableDefault.BILLABLE:
        return BillableTag.BILLABLE
    if time_code.billable_default == BillableDefault.NON_BILLABLE:
        return BillableTag.NON_BILLABLE
    if (time_code.type or "").strip().lower() in _NON_BILLABLE_TYPES:
        return BillableTag.NON_BILLABLE
    return BillableTag.BILLABLE


def _iso_day(value) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    return str(value)[:10]


class BackfillService(TimesheetStore):
    """One-time projection of legacy entries into rows."""

    def __init__(self, db, session=None):
        """Initialize service with database connection."""
        super().__init__(db, session)
        self.directory_service = DirectoryService(db, session)

    async def backfill_rows(self, timesheet_doc: dict, settings: WeekSettings) -> int:
        """
        Create rows for the legacy entries of a timesheet that has none.

        Entries are grouped by (time code, work mode, country); each group
        becomes one row and its entries are re-homed under it, one entry
        per day. Runs only while the timesheet has zero rows, so calling
        it again is a no-op.

        Args:
            timesheet_doc: Timesheet document
            settings: Effective company settings

        Returns:
            Number of rows created
        """
        timesheet_oid = timesheet_doc["_id"]

        existing_row = await self.rows.find_one(
            {"timesheet_id": timesheet_oid}, session=self.session
        )
        if existing_row:
            return 0

        cursor = self.entries.find(
            {"timesheet_id": timesheet_oid, "timesheet_row_id": None},
            session=self.session,
        )
        legacy_docs = await cursor.sort([("day", 1), ("_id", 1)]).to_list(length=None)
        if not legacy_docs:
            return 0

        groups: dict[tuple, list[dict]] = {}
        for doc in legacy_docs:
            key = (
                doc.get("time_code_id") or UNASSIGNED_TIME_CODE,
                doc.get("work_mode") or "office",
                normalize_country_code(doc.get("country")),
            )
            groups.setdefault(key, []).append(doc)

        fallback_country = (
            settings.default_country_code
            or next(iter(settings.office_country_codes), None)
            or FALLBACK_COUNTRY_CODE
        )
        timesheet_status = TimesheetStatus(timesheet_doc.get("status", TimesheetStatus.DRAFT))

        for sort_order, ((time_code_id, work_mode, country), docs) in enumerate(groups.items()):
            location = location_for_work_mode(work_mode)
            country_code = country or fallback_country
            time_code = await self.directory_service.get_time_code(
                timesheet_doc["company_id"], time_code_id
            )
            status = derive_row_status(
                [doc.get("status") or EntryStatus.SAVED for doc in docs],
                timesheet_status,
            )

            if time_code:
                activity_label = time_code.name or time_code.code
            elif time_code_id == UNASSIGNED_TIME_CODE:
                activity_label = UNASSIGNED_LABEL
            else:
                activity_label = str(time_code_id)

            now = utcnow()
            row_doc = {
                "company_id": timesheet_doc["company_id"],
                "user_id": timesheet_doc["user_id"],
                "timesheet_id": timesheet_oid,
                "activity_label": activity_label,
                "time_code_id": str(time_code_id),
                "billable": resolve_default_billable(time_code).value,
                "location": location.value,
                "country_code": country_code,
                "employee_country_code": (
                    country_code
                    if location in (RowLocation.HOMEWORKING, RowLocation.HYBRID)
                    else None
                ),
                "status": status.value,
                "locked": is_locked_status(status),
                "sort_order": sort_order,
                "created_at": now,
                "updated_at": now,
            }
            result = await self.rows.insert_one(row_doc, session=self.session)
            row_doc["_id"] = result.inserted_id

            await self._rehome_entries(row_doc, docs)

        await self.recompute_total(timesheet_oid)

        logger.info(
            "Backfilled %d rows from %d legacy entries for timesheet %s",
            len(groups),
            len(legacy_docs),
            timesheet_oid,
        )
        return len(groups)

    async def _rehome_entries(self, row_doc: dict, docs: list[dict]) -> None:
        """Attach a group's entries to its row, merging entries of the same day."""
        by_day: dict[str, list[dict]] = {}
        for doc in docs:
            by_day.setdefault(_iso_day(doc["day"]), []).append(doc)

        work_mode = work_mode_for_location(RowLocation(row_doc["location"]))

        for day, same_day in by_day.items():
            keeper, extras = same_day[0], same_day[1:]
            minutes = sum(doc.get("duration_min") or 0 for doc in same_day)
            note = next(
                (doc["note"] for doc in same_day if doc.get("note") and doc["note"].strip()),
                None,
            )

            if extras:
                await self.entries.delete_many(
                    {"_id": {"$in": [doc["_id"] for doc in extras]}},
                    session=self.session,
                )

            if minutes <= 0:
                await self.entries.delete_one({"_id": keeper["_id"]}, session=self.session)
                continue

            if minutes > 1440:
                logger.warning(
                    "Merged legacy entries of %s exceed one day (%d minutes)", day, minutes
                )

            await self.entries.update_one(
                {"_id": keeper["_id"]},
                {
                    "$set": {
                        "timesheet_row_id": row_doc["_id"],
                        "time_code_id": row_doc["time_code_id"],
                        "day": day,
                        "duration_min": minutes,
                        "note": note,
                        "country": row_doc["country_code"],
                        "work_mode": work_mode.value,
                        "status": keeper.get("status") or EntryStatus.SAVED.value,
                        "updated_at": utcnow(),
                    }
                },
                session=self.session,
            )
