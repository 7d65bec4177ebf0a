"""Shared document access for the timesheet collections."""
import asyncio
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional
from uuid import uuid4

from bson import ObjectId
from pymongo import ReturnDocument

from app.config import settings
from app.database import transaction
from app.exceptions import ConflictError, NotFoundError
from app.models.timesheet import Timesheet, TimesheetEntry, TimesheetRow

logger = logging.getLogger(__name__)

LEASE_RETRY_SECONDS = 0.05


def utcnow() -> datetime:
    """Current time in UTC."""
    return datetime.now(timezone.utc)


def to_object_id(value: str, label: str) -> ObjectId:
    """
    Parse an id coming from a client.

    An id that is not even a valid ObjectId cannot exist, so it is
    reported as not found.
    """
    if not isinstance(value, str) or not ObjectId.is_valid(value):
        raise NotFoundError(f"{label} not found")
    return ObjectId(value)


def _str_or_none(value) -> Optional[str]:
    return str(value) if value is not None else None


def doc_to_timesheet(doc: dict) -> Timesheet:
    """Convert database document to Timesheet model."""
    return Timesheet(
        _id=str(doc["_id"]),
        company_id=doc["company_id"],
        user_id=doc["user_id"],
        period_start=doc["period_start"],
        period_end=doc["period_end"],
        status=doc.get("status", "DRAFT"),
        submitted_at=doc.get("submitted_at"),
        submitted_by=doc.get("submitted_by"),
        approved_at=doc.get("approved_at"),
        approver_id=doc.get("approver_id"),
        total_minutes=doc.get("total_minutes", 0),
        notes=doc.get("notes"),
        created_at=doc["created_at"],
        updated_at=doc["updated_at"],
    )


def doc_to_row(doc: dict) -> TimesheetRow:
    """Convert database document to TimesheetRow model."""
    return TimesheetRow(
        _id=str(doc["_id"]),
        company_id=doc["company_id"],
        user_id=doc["user_id"],
        timesheet_id=str(doc["timesheet_id"]),
        activity_label=doc["activity_label"],
        time_code_id=doc["time_code_id"],
        billable=doc.get("billable", "auto"),
        location=doc.get("location", "Office"),
        country_code=doc["country_code"],
        employee_country_code=doc.get("employee_country_code"),
        status=doc.get("status", "draft"),
        locked=doc.get("locked", False),
        sort_order=doc.get("sort_order", 0),
        created_at=doc["created_at"],
        updated_at=doc["updated_at"],
    )


def doc_to_entry(doc: dict) -> TimesheetEntry:
    """Convert database document to TimesheetEntry model."""
    return TimesheetEntry(
        _id=str(doc["_id"]),
        company_id=doc["company_id"],
        user_id=doc["user_id"],
        timesheet_id=_str_or_none(doc.get("timesheet_id")),
        timesheet_row_id=_str_or_none(doc.get("timesheet_row_id")),
        time_code_id=doc.get("time_code_id"),
        day=doc["day"],
        duration_min=doc.get("duration_min") or 0,
        note=doc.get("note"),
        country=doc.get("country"),
        work_mode=doc.get("work_mode", "office"),
        status=doc.get("status", "SAVED"),
        status_updated_at=doc.get("status_updated_at"),
        created_at=doc["created_at"],
        updated_at=doc["updated_at"],
    )


class TimesheetStore:
    """Base for services that read and write timesheets, rows and entries."""

    def __init__(self, db, session=None):
        """Initialize with database connection and optional client session."""
        self.db = db
        self.session = session
        self.timesheets = db["timesheets"]
        self.rows = db["timesheet_rows"]
        self.entries = db["timesheet_entries"]

    @asynccontextmanager
    async def unit_of_work(self):
        """
        Run a block as one transaction.

        Every collection call made through this service inside the block
        uses the transaction session.
        """
        async with transaction(self.db) as session:
            previous, self.session = self.session, session
            try:
                yield session
            finally:
                self.session = previous

    @asynccontextmanager
    async def timesheet_lease(self, timesheet_oid: ObjectId):
        """
        Hold the write lease of a timesheet for the duration of a block.

        The lease is a pair of fields on the timesheet document, claimed
        with an atomic find-and-update, so writers of one timesheet run one
        at a time whether or not transactions are enabled. An expired lease
        may be taken over. The fields are removed when the block exits.

        Yields:
            The timesheet document as claimed

        Raises:
            ConflictError: If the lease stays taken for longer than
                timesheet_lease_wait_seconds
        """
        lease_id = uuid4().hex
        deadline = time.monotonic() + settings.timesheet_lease_wait_seconds

        while True:
            now = utcnow()
            claimed = await self.timesheets.find_one_and_update(
                {
                    "_id": timesheet_oid,
                    "$or": [
                        {"lease_expires_at": None},
                        {"lease_expires_at": {"$lt": now}},
                    ],
                },
                {"$set": {
                    "lease_id": lease_id,
                    "lease_expires_at": now + timedelta(seconds=settings.timesheet_lease_seconds),
                }},
                return_document=ReturnDocument.AFTER,
            )
            if claimed:
                break
            if time.monotonic() >= deadline:
                logger.warning("Timed out waiting for the lease of timesheet %s", timesheet_oid)
                raise ConflictError("Timesheet is being updated by another request, retry")
            await asyncio.sleep(LEASE_RETRY_SECONDS)

        try:
            yield claimed
        finally:
            await self.timesheets.update_one(
                {"_id": timesheet_oid, "lease_id": lease_id},
                {"$unset": {"lease_id": "", "lease_expires_at": ""}},
            )

    async def find_timesheet_doc(self, company_id: str, timesheet_id: str) -> dict:
        """Load a timesheet document of the company or raise NotFoundError."""
        doc = await self.timesheets.find_one(
            {"_id": to_object_id(timesheet_id, "Timesheet"), "company_id": company_id},
            session=self.session,
        )
        if not doc:
            raise NotFoundError("Timesheet not found")
        return doc

    async def load_row_docs(self, timesheet_oid: ObjectId) -> list[dict]:
        """Rows of a timesheet ordered by sort_order."""
        cursor = self.rows.find({"timesheet_id": timesheet_oid}, session=self.session)
        return await cursor.sort("sort_order", 1).to_list(length=None)

    async def load_entry_docs(self, row_oids: Iterable[ObjectId]) -> list[dict]:
        """Entries attached to the given rows ordered by day."""
        cursor = self.entries.find(
            {"timesheet_row_id": {"$in": list(row_oids)}},
            session=self.session,
        )
        return await cursor.sort("day", 1).to_list(length=None)

    async def set_entry_status_for_rows(
        self, row_oids: list[ObjectId], status: str, now: datetime
    ) -> None:
        """Move every entry of the given rows to one status."""
        if not row_oids:
            return
        await self.entries.update_many(
            {"timesheet_row_id": {"$in": row_oids}},
            {"$set": {"status": status, "status_updated_at": now, "updated_at": now}},
            session=self.session,
        )

    async def recompute_total(self, timesheet_oid: ObjectId) -> int:
        """
        Recompute the total_minutes cache of a timesheet.

        The total is the sum of duration_min over every entry attached to
        one of the timesheet's rows.
        """
        row_docs = await self.load_row_docs(timesheet_oid)
        entry_docs = await self.load_entry_docs(doc["_id"] for doc in row_docs)
        total = sum(doc.get("duration_min") or 0 for doc in entry_docs)

        await self.timesheets.update_one(
            {"_id": timesheet_oid},
            {"$set": {"total_minutes": total, "updated_at": utcnow()}},
            session=self.session,
        )
        return total
