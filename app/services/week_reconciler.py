"""Week reconciler - diffs a desired set of rows against persisted state."""
import logging
import math
from dataclasses import dataclass
from typing import Optional

from bson import ObjectId

from app.exceptions import NotFoundError, ValidationError
from app.models.timesheet import EntryStatus, RowLocation, RowStatus
from app.models.week import WeekEntryInput, WeekRowInput, WeekSettings
from app.services.settings_service import normalize_country_code
from app.services.store import TimesheetStore, utcnow
from app.services.workflow import is_locked_status, normalize_location, work_mode_for_location
from app.utils.period import WeekPeriod, is_within, parse_iso_day

logger = logging.getLogger(__name__)

MAX_DAY_MINUTES = 1440


@dataclass
class RowPlan:
    """A validated payload row, ready to be applied."""

    fields: dict
    days: dict[str, tuple[int, Optional[str]]]
    status: Optional[RowStatus] = None
    existing: Optional[dict] = None


@dataclass
class ReconcileResult:
    """Counts of what a reconcile pass changed."""

    rows_created: int = 0
    rows_updated: int = 0
    rows_deleted: int = 0
    entries_created: int = 0
    entries_updated: int = 0
    entries_deleted: int = 0


@dataclass
class ReconcilePlan:
    """Validated rows plus the persisted rows they were checked against."""

    rows: list[RowPlan]
    existing_docs: list[dict]


def round_minutes(value: float) -> int:
    """Floor at zero, then round half up to whole minutes."""
    if not math.isfinite(value):
        raise ValidationError(f"Minutes must be a finite number, got {value}")
    return int(math.floor(max(0.0, float(value)) + 0.5))


def normalize_entries(
    entries: list[WeekEntryInput], period: WeekPeriod
) -> dict[str, tuple[int, Optional[str]]]:
    """
    Turn payload entries into a day -> (minutes, note) map.

    Blank notes become None; for a day listed twice the last one wins.

    Raises:
        ValidationError: If a day is invalid, outside the week, or holds
            more than a day's worth of minutes
    """
    days: dict[str, tuple[int, Optional[str]]] = {}
    for entry in entries:
        day = parse_iso_day(entry.day).isoformat()
        if not is_within(period, day):
            raise ValidationError(f"Day {day} is outside the week {period.start} - {period.end}")

        minutes = round_minutes(entry.minutes)
        if minutes > MAX_DAY_MINUTES:
            raise ValidationError(f"Day {day} cannot hold more than {MAX_DAY_MINUTES} minutes")

        note = entry.note if entry.note and entry.note.strip() else None
        days[day] = (minutes, note)
    return days


def resolve_row_fields(payload: WeekRowInput, settings: WeekSettings) -> dict:
    """
    Normalize location and countries of a payload row.

    Raises:
        ValidationError: If no country can be resolved, the country is not
            an office country for an Office/Hybrid row, or a Hybrid row
            misses the employee country
    """
    location = (
        normalize_location(payload.location) if payload.location else settings.default_location
    )

    country_code = normalize_country_code(payload.country_code) or settings.default_country_code
    if not country_code:
        raise ValidationError(f"Country code is required for row '{payload.activity_label}'")

    office_codes = settings.office_country_codes
    if location in (RowLocation.OFFICE, RowLocation.HYBRID) and office_codes:
        if country_code not in office_codes:
            raise ValidationError(
                f"Country {country_code} is not an office country "
                f"(allowed: {', '.join(office_codes)})"
            )

    employee_country_code = None
    if location == RowLocation.HYBRID:
        employee_country_code = normalize_country_code(payload.employee_country_code)
        if not employee_country_code:
            raise ValidationError(
                f"Hybrid row '{payload.activity_label}' requires an employee country code"
            )

    return {
        "activity_label": payload.activity_label.strip(),
        "time_code_id": payload.time_code_id,
        "billable": payload.billable.value,
        "location": location.value,
        "country_code": country_code,
        "employee_country_code": employee_country_code,
    }


class WeekReconciler(TimesheetStore):
    """Applies a desired list of rows to a timesheet."""

    async def plan(
        self,
        timesheet_oid: Optional[ObjectId],
        period: WeekPeriod,
        settings: WeekSettings,
        rows: list[WeekRowInput],
    ) -> ReconcilePlan:
        """
        Validate the desired rows against the persisted ones.

        Reads only. A timesheet that does not exist yet has no rows.

        Raises:
            ValidationError: If a row is invalid or references a locked row
            NotFoundError: If a row id does not belong to the timesheet
        """
        existing_docs = []
        if timesheet_oid is not None:
            existing_docs = await self.load_row_docs(timesheet_oid)
        existing_by_id = {str(doc["_id"]): doc for doc in existing_docs}
        return ReconcilePlan(
            rows=self._plan_rows(rows, existing_by_id, period, settings),
            existing_docs=existing_docs,
        )

    async def reconcile(
        self,
        timesheet_doc: dict,
        period: WeekPeriod,
        settings: WeekSettings,
        rows: list[WeekRowInput],
    ) -> ReconcileResult:
        """
        Create, update and delete rows and entries to match the payload.

        Every payload row is validated before anything is written, so a
        bad row leaves storage untouched. Existing unlocked rows missing
        from the payload are deleted with their entries; locked rows are
        kept as they are.

        Args:
            timesheet_doc: Timesheet document
            period: Resolved week
            settings: Effective company settings
            rows: Desired rows

        Returns:
            ReconcileResult with change counts

        Raises:
            ValidationError: If a row is invalid or references a locked row
            NotFoundError: If a row id does not belong to the timesheet
        """
        plan = await self.plan(timesheet_doc["_id"], period, settings, rows)
        return await self.apply(timesheet_doc, plan)

    async def apply(self, timesheet_doc: dict, plan: ReconcilePlan) -> ReconcileResult:
        """Write a validated plan."""
        timesheet_oid = timesheet_doc["_id"]
        existing_docs = plan.existing_docs

        entries_by_row: dict[ObjectId, list[dict]] = {}
        for entry_doc in await self.load_entry_docs(doc["_id"] for doc in existing_docs):
            entries_by_row.setdefault(entry_doc["timesheet_row_id"], []).append(entry_doc)

        result = ReconcileResult()
        next_sort_order = max((doc.get("sort_order", 0) for doc in existing_docs), default=-1) + 1
        kept: set[ObjectId] = set()

        for row_plan in plan.rows:
            now = utcnow()
            if row_plan.existing is not None:
                row_doc = {**row_plan.existing, **row_plan.fields, "updated_at": now}
                update = {**row_plan.fields, "updated_at": now}
                if row_plan.status is not None:
                    update["status"] = row_plan.status.value
                    update["locked"] = is_locked_status(row_plan.status)
                    row_doc.update(status=update["status"], locked=update["locked"])

                await self.rows.update_one(
                    {"_id": row_doc["_id"]}, {"$set": update}, session=self.session
                )
                result.rows_updated += 1
                existing_entries = entries_by_row.get(row_doc["_id"], [])
            else:
                status = row_plan.status or RowStatus.DRAFT
                row_doc = {
                    "company_id": timesheet_doc["company_id"],
                    "user_id": timesheet_doc["user_id"],
                    "timesheet_id": timesheet_oid,
                    **row_plan.fields,
                    "status": status.value,
                    "locked": row_plan.status is not None and is_locked_status(row_plan.status),
                    "sort_order": next_sort_order,
                    "created_at": now,
                    "updated_at": now,
                }
                insert_result = await self.rows.insert_one(row_doc, session=self.session)
                row_doc["_id"] = insert_result.inserted_id
                next_sort_order += 1
                result.rows_created += 1
                existing_entries = []

            kept.add(row_doc["_id"])
            await self._sync_entries(row_doc, existing_entries, row_plan.days, result)

        stale = [
            doc["_id"] for doc in existing_docs
            if doc["_id"] not in kept and not doc.get("locked", False)
        ]
        if stale:
            deleted = await self.entries.delete_many(
                {"timesheet_row_id": {"$in": stale}}, session=self.session
            )
            await self.rows.delete_many({"_id": {"$in": stale}}, session=self.session)
            result.rows_deleted += len(stale)
            result.entries_deleted += deleted.deleted_count

        logger.info(
            "Reconciled timesheet %s: rows +%d ~%d -%d, entries +%d ~%d -%d",
            timesheet_oid,
            result.rows_created,
            result.rows_updated,
            result.rows_deleted,
            result.entries_created,
            result.entries_updated,
            result.entries_deleted,
        )
        return result

    def _plan_rows(
        self,
        rows: list[WeekRowInput],
        existing_by_id: dict[str, dict],
        period: WeekPeriod,
        settings: WeekSettings,
    ) -> list[RowPlan]:
        """Validate every payload row before any write happens."""
        plans = []
        seen_ids: set[str] = set()

        for payload in rows:
            existing = None
            if payload.id:
                existing = existing_by_id.get(payload.id)
                if existing is None:
                    raise NotFoundError(f"Timesheet row {payload.id} not found")
                if existing.get("locked", False):
                    raise ValidationError(f"Timesheet row {payload.id} is locked")
                if payload.id in seen_ids:
                    raise ValidationError(f"Timesheet row {payload.id} is listed more than once")
                seen_ids.add(payload.id)

            plans.append(
                RowPlan(
                    fields=resolve_row_fields(payload, settings),
                    days=normalize_entries(payload.entries, period),
                    status=payload.status,
                    existing=existing,
                )
            )
        return plans

    async def _sync_entries(
        self,
        row_doc: dict,
        existing_entries: list[dict],
        days: dict[str, tuple[int, Optional[str]]],
        result: ReconcileResult,
    ) -> None:
        """Make the entries of one row match the desired day map."""
        existing_by_day = {doc["day"]: doc for doc in existing_entries}
        work_mode = work_mode_for_location(RowLocation(row_doc["location"])).value

        for day, (minutes, note) in days.items():
            current = existing_by_day.get(day)
            now = utcnow()

            if minutes <= 0:
                if current is not None:
                    await self.entries.delete_one({"_id": current["_id"]}, session=self.session)
                    result.entries_deleted += 1
                continue

            values = {
                "time_code_id": row_doc["time_code_id"],
                "duration_min": minutes,
                "note": note,
                "country": row_doc["country_code"],
                "work_mode": work_mode,
                "status": EntryStatus.SAVED.value,
                "status_updated_at": now,
                "updated_at": now,
            }
            if current is not None:
                await self.entries.update_one(
                    {"_id": current["_id"]}, {"$set": values}, session=self.session
                )
                result.entries_updated += 1
            else:
                await self.entries.insert_one(
                    {
                        "company_id": row_doc["company_id"],
                        "user_id": row_doc["user_id"],
                        "timesheet_id": row_doc["timesheet_id"],
                        "timesheet_row_id": row_doc["_id"],
                        "day": day,
                        **values,
                        "created_at": now,
                    },
                    session=self.session,
                )
                result.entries_created += 1

        for day, doc in existing_by_day.items():
            if day not in days:
                await self.entries.delete_one({"_id": doc["_id"]}, session=self.session)
                result.entries_deleted += 1

