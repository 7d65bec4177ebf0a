"""Entry service - the fine-grained per-entry workflow."""
import logging
from typing import Optional

from pymongo.errors import DuplicateKeyError

from app.exceptions import NotFoundError, ValidationError
from app.models.history import HistoryAction, HistoryEventCreate, HistoryTarget
from app.models.timesheet import (
    EntryStatus,
    EntryUpdate,
    RowLocation,
    TimesheetEntry,
    TimesheetEntryCreate,
)
from app.services.history_service import HistoryService
from app.services.store import TimesheetStore, doc_to_entry, to_object_id, utcnow
from app.services.workflow import (
    ENTRY_FROZEN_STATUSES,
    ensure_entry_transition,
    work_mode_for_location,
)
from app.utils.period import WeekPeriod, is_within, parse_iso_day

logger = logging.getLogger(__name__)


class EntryService(TimesheetStore):
    """Service for single-entry edits and status changes."""

    async def _find_entry_doc(self, company_id: str, entry_id: str) -> dict:
        """Load an entry document of the company or raise NotFoundError."""
        doc = await self.entries.find_one(
            {"_id": to_object_id(entry_id, "Timesheet entry"), "company_id": company_id},
            session=self.session,
        )
        if not doc:
            raise NotFoundError("Timesheet entry not found")
        return doc

    async def _ensure_row_unlocked(self, entry_doc: dict) -> None:
        """Entries under a locked row cannot be edited."""
        row_oid = entry_doc.get("timesheet_row_id")
        if row_oid is None:
            return
        row_doc = await self.rows.find_one({"_id": row_oid}, session=self.session)
        if row_doc and row_doc.get("locked", False):
            raise ValidationError("Timesheet row is locked")

    async def get_entry(self, company_id: str, entry_id: str) -> TimesheetEntry:
        """
        Get an entry of the company.

        Raises:
            NotFoundError: If the entry does not exist in the company
        """
        return doc_to_entry(await self._find_entry_doc(company_id, entry_id))

    async def list_entries(self, company_id: str, timesheet_id: str) -> list[TimesheetEntry]:
        """
        List every entry of a timesheet ordered by day.

        Legacy entries not yet attached to a row are included.

        Raises:
            NotFoundError: If the timesheet does not exist in the company
        """
        timesheet_doc = await self.find_timesheet_doc(company_id, timesheet_id)
        cursor = self.entries.find({"timesheet_id": timesheet_doc["_id"]}, session=self.session)
        docs = await cursor.sort([("day", 1), ("_id", 1)]).to_list(length=None)
        return [doc_to_entry(doc) for doc in docs]

    async def create_entry(
        self, company_id: str, entry_create: TimesheetEntryCreate, actor_id: str
    ) -> TimesheetEntry:
        """
        Add a day to an existing row.

        The entry takes its time code, country and work mode from the row
        and starts as SAVED.

        Args:
            company_id: Company ID
            entry_create: Row, day and minutes of the new entry
            actor_id: User creating the entry

        Returns:
            The created entry

        Raises:
            NotFoundError: If the row does not exist in the company
            ValidationError: If the row is locked, the day is outside the
                timesheet period, or the row already has an entry that day
        """
        async with self.unit_of_work():
            row_doc = await self.rows.find_one(
                {
                    "_id": to_object_id(entry_create.timesheet_row_id, "Timesheet row"),
                    "company_id": company_id,
                },
                session=self.session,
            )
            if not row_doc:
                raise NotFoundError("Timesheet row not found")
            if row_doc.get("locked", False):
                raise ValidationError("Timesheet row is locked")

            timesheet_doc = await self.timesheets.find_one(
                {"_id": row_doc["timesheet_id"]}, session=self.session
            )
            if not timesheet_doc:
                raise NotFoundError("Timesheet not found")

            day = parse_iso_day(entry_create.day).isoformat()
            period = WeekPeriod(timesheet_doc["period_start"], timesheet_doc["period_end"])
            if not is_within(period, day):
                raise ValidationError(
                    f"Day {day} is outside the timesheet period {period.start} - {period.end}"
                )

            taken = await self.entries.find_one(
                {"timesheet_row_id": row_doc["_id"], "day": day}, session=self.session
            )
            if taken:
                raise ValidationError(f"Row already has an entry on {day}")

            note = entry_create.note
            now = utcnow()
            entry_doc = {
                "company_id": company_id,
                "user_id": row_doc["user_id"],
                "timesheet_id": row_doc["timesheet_id"],
                "timesheet_row_id": row_doc["_id"],
                "time_code_id": row_doc["time_code_id"],
                "day": day,
                "duration_min": entry_create.duration_min,
                "note": note if note and note.strip() else None,
                "country": row_doc["country_code"],
                "work_mode": work_mode_for_location(RowLocation(row_doc["location"])).value,
                "status": EntryStatus.SAVED.value,
                "status_updated_at": now,
                "created_at": now,
                "updated_at": now,
            }
            try:
                result = await self.entries.insert_one(entry_doc, session=self.session)
            except DuplicateKeyError:
                raise ValidationError(f"Row already has an entry on {day}")
            entry_doc["_id"] = result.inserted_id

            await self.recompute_total(row_doc["timesheet_id"])
            await HistoryService(self.db, self.session).record_event(
                company_id,
                HistoryEventCreate(
                    user_id=row_doc["user_id"],
                    target_type=HistoryTarget.TIMESHEET_ENTRY,
                    target_id=str(result.inserted_id),
                    action=HistoryAction.CREATED,
                    actor_user_id=actor_id,
                    metadata={"day": day, "duration_min": entry_create.duration_min},
                ),
            )

        logger.info("Created entry %s on row %s", result.inserted_id, row_doc["_id"])
        return doc_to_entry(entry_doc)

    async def update_entry(
        self,
        company_id: str,
        entry_id: str,
        entry_update: EntryUpdate,
        actor_id: str,
    ) -> Optional[TimesheetEntry]:
        """
        Edit an entry and/or move it to another status.

        Field edits are refused for APPROVED and INVOICED entries and for
        entries of a locked row. A supplied status must be a transition of
        the entry table, so asking for the current status fails too.
        Setting the duration to 0 deletes the entry.

        Args:
            company_id: Company ID
            entry_id: Entry ID
            entry_update: Changes to apply
            actor_id: User making the change

        Returns:
            The updated entry, or None if it was deleted

        Raises:
            NotFoundError: If the entry does not exist
            ValidationError: If the edit or transition is not allowed
        """
        async with self.unit_of_work():
            entry_doc = await self._find_entry_doc(company_id, entry_id)
            current = EntryStatus(entry_doc.get("status") or EntryStatus.SAVED)

            changes = entry_update.model_dump(exclude_unset=True, exclude={"status"})
            target = entry_update.status
            status_change = target is not None

            if changes:
                if current in ENTRY_FROZEN_STATUSES:
                    raise ValidationError(f"Entry in {current.value} status cannot be edited")
                await self._ensure_row_unlocked(entry_doc)
            if status_change:
                ensure_entry_transition(current, target)

            if changes.get("duration_min") == 0:
                await self._delete(company_id, entry_doc, actor_id)
                return None

            now = utcnow()
            update_doc = {**changes, "updated_at": now}
            if status_change:
                update_doc["status"] = target.value
                update_doc["status_updated_at"] = now

            await self.entries.update_one(
                {"_id": entry_doc["_id"]}, {"$set": update_doc}, session=self.session
            )
            if "duration_min" in changes and entry_doc.get("timesheet_id") is not None:
                await self.recompute_total(entry_doc["timesheet_id"])

            diff = {key: str(value) for key, value in changes.items()}
            if status_change:
                diff["status"] = f"{current.value} -> {target.value}"
            await HistoryService(self.db, self.session).record_event(
                company_id,
                HistoryEventCreate(
                    user_id=entry_doc["user_id"],
                    target_type=HistoryTarget.TIMESHEET_ENTRY,
                    target_id=str(entry_doc["_id"]),
                    action=HistoryAction.UPDATED,
                    actor_user_id=actor_id,
                    diff=diff,
                ),
            )

        if status_change:
            logger.info("Entry %s moved %s -> %s", entry_id, current.value, target.value)
        return await self.get_entry(company_id, entry_id)

    async def delete_entry(self, company_id: str, entry_id: str, actor_id: str) -> dict:
        """
        Delete an entry.

        Returns:
            Dictionary with deleted_count

        Raises:
            NotFoundError: If the entry does not exist
            ValidationError: If the entry is APPROVED/INVOICED or its row is locked
        """
        async with self.unit_of_work():
            entry_doc = await self._find_entry_doc(company_id, entry_id)
            current = EntryStatus(entry_doc.get("status") or EntryStatus.SAVED)
            if current in ENTRY_FROZEN_STATUSES:
                raise ValidationError(f"Entry in {current.value} status cannot be deleted")
            await self._ensure_row_unlocked(entry_doc)

            return {"deleted_count": await self._delete(company_id, entry_doc, actor_id)}

    async def _delete(self, company_id: str, entry_doc: dict, actor_id: str) -> int:
        """Delete an entry, refresh the timesheet total and record it."""
        result = await self.entries.delete_one({"_id": entry_doc["_id"]}, session=self.session)
        if entry_doc.get("timesheet_id") is not None:
            await self.recompute_total(entry_doc["timesheet_id"])

        await HistoryService(self.db, self.session).record_event(
            company_id,
            HistoryEventCreate(
                user_id=entry_doc["user_id"],
                target_type=HistoryTarget.TIMESHEET_ENTRY,
                target_id=str(entry_doc["_id"]),
                action=HistoryAction.DELETED,
                actor_user_id=actor_id,
                metadata={
                    "day": entry_doc.get("day"),
                    "duration_min": entry_doc.get("duration_min"),
                },
            ),
        )
        return result.deleted_count
