"""Week service - week view, week upsert and week-mode submit."""
import logging
from typing import Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.models.history import HistoryAction, HistoryEventCreate, HistoryTarget
from app.models.timesheet import EntryStatus, RowStatus, TimesheetStatus
from app.models.week import (
    WeekEntryView,
    WeekRowView,
    WeekSettings,
    WeekSubmit,
    WeekUpsert,
    WeekView,
)
from app.services.backfill_service import BackfillService
from app.services.history_service import HistoryService
from app.services.rejection_service import RejectionService
from app.services.settings_service import SettingsService
from app.services.store import TimesheetStore, utcnow
from app.services.week_reconciler import WeekReconciler
from app.utils.period import WeekPeriod, resolve_week

logger = logging.getLogger(__name__)


class WeekService(TimesheetStore):
    """Service for the week-mode timesheet operations."""

    def __init__(self, db, session=None):
        """Initialize service with database connection."""
        super().__init__(db, session)
        self.settings_service = SettingsService(db)

    @staticmethod
    def _period_query(company_id: str, user_id: str, period: WeekPeriod) -> dict:
        return {
            "company_id": company_id,
            "user_id": user_id,
            "period_start": period.start,
            "period_end": period.end,
        }

    async def _find_timesheet(
        self, company_id: str, user_id: str, period: WeekPeriod
    ) -> Optional[dict]:
        """Find the user's timesheet for the period without creating it."""
        return await self.timesheets.find_one(
            self._period_query(company_id, user_id, period), session=self.session
        )

    async def _get_or_create_timesheet(
        self, company_id: str, user_id: str, period: WeekPeriod
    ) -> dict:
        """Find the user's timesheet for the period, creating a draft one if needed."""
        query = self._period_query(company_id, user_id, period)
        existing = await self.timesheets.find_one(query, session=self.session)
        if existing:
            return existing

        now = utcnow()
        timesheet_doc = {
            **query,
            "status": TimesheetStatus.DRAFT.value,
            "total_minutes": 0,
            "notes": None,
            "revision": 0,
            "created_at": now,
            "updated_at": now,
        }
        try:
            result = await self.timesheets.insert_one(timesheet_doc, session=self.session)
        except DuplicateKeyError:
            # Another request created it first.
            existing = await self.timesheets.find_one(query, session=self.session)
            if existing is None:
                raise
            return existing

        timesheet_doc["_id"] = result.inserted_id
        logger.info(
            "Created timesheet %s for user %s, week %s", result.inserted_id, user_id, period.start
        )

        await HistoryService(self.db, self.session).record_event(
            company_id,
            HistoryEventCreate(
                user_id=user_id,
                target_type=HistoryTarget.TIMESHEET,
                target_id=str(result.inserted_id),
                action=HistoryAction.CREATED,
                actor_user_id=user_id,
            ),
        )
        return timesheet_doc

    async def _bump_revision(self, timesheet_doc: dict) -> dict:
        """
        Count a write to the timesheet.

        Inside a transaction this also makes a concurrent transaction on
        the same timesheet conflict.
        """
        return await self.timesheets.find_one_and_update(
            {"_id": timesheet_doc["_id"]},
            {"$inc": {"revision": 1}, "$set": {"updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
            session=self.session,
        )

    async def _build_view(
        self, timesheet_doc: dict, period: WeekPeriod, settings: WeekSettings
    ) -> WeekView:
        """Assemble the week view from the persisted rows and entries."""
        row_docs = await self.load_row_docs(timesheet_doc["_id"])
        entry_docs = await self.load_entry_docs(doc["_id"] for doc in row_docs)

        entries_by_row: dict = {}
        for entry_doc in entry_docs:
            entries_by_row.setdefault(entry_doc["timesheet_row_id"], []).append(
                WeekEntryView(
                    day=entry_doc["day"],
                    minutes=entry_doc.get("duration_min") or 0,
                    note=entry_doc.get("note"),
                )
            )

        rejection = None
        if timesheet_doc.get("status") == TimesheetStatus.REJECTED.value:
            rejection = await RejectionService(self.db, self.session).get_rejection(
                timesheet_doc["company_id"], str(timesheet_doc["_id"])
            )

        rows = [
            WeekRowView(
                id=str(doc["_id"]),
                activity_label=doc["activity_label"],
                time_code_id=doc["time_code_id"],
                billable=doc.get("billable", "auto"),
                location=doc.get("location", "Office"),
                country_code=doc["country_code"],
                employee_country_code=doc.get("employee_country_code"),
                status=doc.get("status", RowStatus.DRAFT.value),
                locked=doc.get("locked", False),
                sort_order=doc.get("sort_order", 0),
                entries=entries_by_row.get(doc["_id"], []),
                rejection=rejection if doc.get("status") == RowStatus.REJECTED.value else None,
            )
            for doc in row_docs
        ]

        return WeekView(
            timesheet_id=str(timesheet_doc["_id"]),
            week_start=period.start,
            week_end=period.end,
            status=timesheet_doc.get("status", TimesheetStatus.DRAFT.value),
            total_minutes=timesheet_doc.get("total_minutes", 0),
            rows=rows,
            settings=settings,
            rejection=rejection,
        )

    async def get_week(self, company_id: str, user_id: str, week_start: str) -> WeekView:
        """
        Get a user's week, creating the timesheet on first access.

        A timesheet without rows gets its legacy entries backfilled into
        rows before the view is built.

        Args:
            company_id: Company ID
            user_id: Owner of the timesheet
            week_start: ISO date of the first day of the week

        Returns:
            WeekView

        Raises:
            ValidationError: If week_start is not a valid date
        """
        period = resolve_week(week_start)
        settings = await self.settings_service.get_week_settings(company_id)

        async with self.unit_of_work():
            timesheet_doc = await self._get_or_create_timesheet(company_id, user_id, period)
            backfilled = await BackfillService(self.db, self.session).backfill_rows(
                timesheet_doc, settings
            )
            if backfilled:
                timesheet_doc = await self.timesheets.find_one(
                    {"_id": timesheet_doc["_id"]}, session=self.session
                )
            return await self._build_view(timesheet_doc, period, settings)

    async def upsert_week(
        self,
        company_id: str,
        user_id: str,
        week_start: str,
        week_upsert: WeekUpsert,
        actor_id: Optional[str] = None,
    ) -> WeekView:
        """
        Save the desired rows of a week.

        All-or-nothing: the payload is checked against the stored rows
        before anything is written, so a rejected upsert leaves the
        timesheet as it was. The writes then run under the timesheet's
        write lease (and in one transaction when enabled), where the
        payload is checked again against the rows as they are now.

        Args:
            company_id: Company ID
            user_id: Owner of the timesheet
            week_start: ISO date of the first day of the week
            week_upsert: Desired rows
            actor_id: User performing the change (defaults to the owner)

        Returns:
            The updated WeekView

        Raises:
            ValidationError: If the week or a row is invalid, or a row is locked
            NotFoundError: If a row id does not belong to the timesheet
            ConflictError: If another write holds the timesheet for too long
        """
        period = resolve_week(week_start)
        settings = await self.settings_service.get_week_settings(company_id)

        existing = await self._find_timesheet(company_id, user_id, period)
        await WeekReconciler(self.db).plan(
            existing["_id"] if existing else None, period, settings, week_upsert.rows
        )

        timesheet_doc = existing or await self._get_or_create_timesheet(
            company_id, user_id, period
        )
        async with self.timesheet_lease(timesheet_doc["_id"]) as timesheet_doc:
            async with self.unit_of_work():
                reconciler = WeekReconciler(self.db, self.session)
                plan = await reconciler.plan(
                    timesheet_doc["_id"], period, settings, week_upsert.rows
                )
                timesheet_doc = await self._bump_revision(timesheet_doc)

                result = await reconciler.apply(timesheet_doc, plan)
                total = await self.recompute_total(timesheet_doc["_id"])

                await HistoryService(self.db, self.session).record_event(
                    company_id,
                    HistoryEventCreate(
                        user_id=user_id,
                        target_type=HistoryTarget.TIMESHEET,
                        target_id=str(timesheet_doc["_id"]),
                        action=HistoryAction.UPDATED,
                        actor_user_id=actor_id or user_id,
                        metadata={
                            "rows_created": result.rows_created,
                            "rows_updated": result.rows_updated,
                            "rows_deleted": result.rows_deleted,
                            "total_minutes": total,
                        },
                    ),
                )

        return await self.get_week(company_id, user_id, week_start)

    async def submit_week(
        self,
        company_id: str,
        user_id: str,
        week_start: str,
        week_submit: Optional[WeekSubmit] = None,
        actor_id: Optional[str] = None,
    ) -> WeekView:
        """
        Submit every open row of a week.

        Rows already approved or locked are skipped. The others become
        submitted and locked, and their entries wait for approval. The
        timesheet becomes SUBMITTED whatever its current status. Without
        force, a week with nothing to submit is left untouched.

        Args:
            company_id: Company ID
            user_id: Owner of the timesheet
            week_start: ISO date of the first day of the week
            week_submit: Submit options
            actor_id: User submitting (defaults to the owner)

        Returns:
            The updated WeekView
        """
        week_submit = week_submit or WeekSubmit()
        period = resolve_week(week_start)
        settings = await self.settings_service.get_week_settings(company_id)
        actor_id = actor_id or user_id

        timesheet_doc = await self._get_or_create_timesheet(company_id, user_id, period)
        async with self.timesheet_lease(timesheet_doc["_id"]) as timesheet_doc:
            async with self.unit_of_work():
                await BackfillService(self.db, self.session).backfill_rows(timesheet_doc, settings)

                row_docs = await self.load_row_docs(timesheet_doc["_id"])
                eligible = [
                    doc["_id"] for doc in row_docs
                    if doc.get("status") != RowStatus.APPROVED.value
                    and not doc.get("locked", False)
                ]

                if not eligible and not week_submit.force:
                    logger.info("Nothing to submit for timesheet %s", timesheet_doc["_id"])
                else:
                    timesheet_doc = await self._bump_revision(timesheet_doc)
                    now = utcnow()
                    if eligible:
                        await self.rows.update_many(
                            {"_id": {"$in": eligible}},
                            {"$set": {
                                "status": RowStatus.SUBMITTED.value,
                                "locked": True,
                                "updated_at": now,
                            }},
                            session=self.session,
                        )
                        await self.set_entry_status_for_rows(
                            eligible, EntryStatus.PENDING_APPROVAL.value, now
                        )

                    await self.timesheets.update_one(
                        {"_id": timesheet_doc["_id"]},
                        {"$set": {
                            "status": TimesheetStatus.SUBMITTED.value,
                            "submitted_at": now,
                            "submitted_by": actor_id,
                            "updated_at": now,
                        }},
                        session=self.session,
                    )
                    logger.info(
                        "Submitted %d rows of timesheet %s", len(eligible), timesheet_doc["_id"]
                    )

                    await HistoryService(self.db, self.session).record_event(
                        company_id,
                        HistoryEventCreate(
                            user_id=user_id,
                            target_type=HistoryTarget.TIMESHEET,
                            target_id=str(timesheet_doc["_id"]),
                            action=HistoryAction.SUBMITTED,
                            actor_user_id=actor_id,
                            metadata={"rows": len(eligible), "force": week_submit.force},
                        ),
                    )

        return await self.get_week(company_id, user_id, week_start)
