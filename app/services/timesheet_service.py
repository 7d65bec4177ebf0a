"""Timesheet service - timesheet-level submit, approve and reject."""
import logging

from app.exceptions import ValidationError
from app.models.approval import ApprovalStatus
from app.models.history import HistoryAction, HistoryEvent, HistoryEventCreate, HistoryTarget
from app.models.timesheet import EntryStatus, RowStatus, Timesheet, TimesheetStatus
from app.services.approval_service import ApprovalService
from app.services.history_service import HistoryService
from app.services.store import TimesheetStore, doc_to_timesheet, utcnow
from app.services.workflow import ensure_timesheet_transition

logger = logging.getLogger(__name__)


class TimesheetService(TimesheetStore):
    """Service for the timesheet workflow transitions."""

    async def get_timesheet(self, company_id: str, timesheet_id: str) -> Timesheet:
        """
        Get a timesheet of the company.

        Raises:
            NotFoundError: If the timesheet does not exist in the company
        """
        return doc_to_timesheet(await self.find_timesheet_doc(company_id, timesheet_id))

    async def submit_timesheet(
        self, company_id: str, timesheet_id: str, actor_id: str
    ) -> Timesheet:
        """
        Submit a draft timesheet.

        Args:
            company_id: Company ID
            timesheet_id: Timesheet ID
            actor_id: User submitting

        Returns:
            Updated timesheet

        Raises:
            NotFoundError: If the timesheet does not exist
            ValidationError: If the timesheet is not in DRAFT status
        """
        timesheet_doc = await self.find_timesheet_doc(company_id, timesheet_id)
        async with self.timesheet_lease(timesheet_doc["_id"]) as timesheet_doc:
            async with self.unit_of_work():
                if timesheet_doc.get("status") != TimesheetStatus.DRAFT.value:
                    raise ValidationError("Timesheet is not in draft status")

                now = utcnow()
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

                await HistoryService(self.db, self.session).record_event(
                    company_id,
                    HistoryEventCreate(
                        user_id=timesheet_doc["user_id"],
                        target_type=HistoryTarget.TIMESHEET,
                        target_id=str(timesheet_doc["_id"]),
                        action=HistoryAction.SUBMITTED,
                        actor_user_id=actor_id,
                    ),
                )

        logger.info("Timesheet %s submitted by %s", timesheet_id, actor_id)
        return await self.get_timesheet(company_id, timesheet_id)

    async def approve_timesheet(
        self, company_id: str, timesheet_id: str, approver_id: str
    ) -> Timesheet:
        """
        Approve a submitted timesheet.

        Submitted rows become approved (and stay locked) and their entries
        become APPROVED.

        Raises:
            NotFoundError: If the timesheet does not exist
            ValidationError: If the timesheet is not in SUBMITTED status
        """
        timesheet_doc = await self.find_timesheet_doc(company_id, timesheet_id)
        async with self.timesheet_lease(timesheet_doc["_id"]) as timesheet_doc:
            async with self.unit_of_work():
                current = timesheet_doc.get("status", TimesheetStatus.DRAFT)
                ensure_timesheet_transition(current, TimesheetStatus.APPROVED)

                now = utcnow()
                row_docs = await self.load_row_docs(timesheet_doc["_id"])
                submitted = [
                    doc["_id"] for doc in row_docs
                    if doc.get("status") == RowStatus.SUBMITTED.value
                ]
                if submitted:
                    await self.rows.update_many(
                        {"_id": {"$in": submitted}},
                        {"$set": {
                            "status": RowStatus.APPROVED.value,
                            "locked": True,
                            "updated_at": now,
                        }},
                        session=self.session,
                    )
                    await self.set_entry_status_for_rows(
                        submitted, EntryStatus.APPROVED.value, now
                    )

                await self.timesheets.update_one(
                    {"_id": timesheet_doc["_id"]},
                    {"$set": {
                        "status": TimesheetStatus.APPROVED.value,
                        "approved_at": now,
                        "approver_id": approver_id,
                        "updated_at": now,
                    }},
                    session=self.session,
                )
                await ApprovalService(self.db, self.session).record_decision(
                    company_id, timesheet_doc["_id"], approver_id, ApprovalStatus.APPROVED
                )

                await HistoryService(self.db, self.session).record_event(
                    company_id,
                    HistoryEventCreate(
                        user_id=timesheet_doc["user_id"],
                        target_type=HistoryTarget.TIMESHEET,
                        target_id=str(timesheet_doc["_id"]),
                        action=HistoryAction.APPROVED,
                        actor_user_id=approver_id,
                    ),
                )

        logger.info("Timesheet %s approved by %s", timesheet_id, approver_id)
        return await self.get_timesheet(company_id, timesheet_id)

    async def reject_timesheet(
        self, company_id: str, timesheet_id: str, approver_id: str, reason: str
    ) -> Timesheet:
        """
        Reject a submitted timesheet.

        Every row that is not approved goes back to rejected and unlocked,
        and the entries of those rows become REJECTED. The reason is kept
        on the history event.

        Raises:
            NotFoundError: If the timesheet does not exist
            ValidationError: If the reason is blank or the timesheet is not
                in SUBMITTED status
        """
        if not reason or not reason.strip():
            raise ValidationError("A rejection reason is required")

        timesheet_doc = await self.find_timesheet_doc(company_id, timesheet_id)
        async with self.timesheet_lease(timesheet_doc["_id"]) as timesheet_doc:
            async with self.unit_of_work():
                current = timesheet_doc.get("status", TimesheetStatus.DRAFT)
                ensure_timesheet_transition(current, TimesheetStatus.REJECTED)

                now = utcnow()
                row_docs = await self.load_row_docs(timesheet_doc["_id"])
                reopened = [
                    doc["_id"] for doc in row_docs
                    if doc.get("status") != RowStatus.APPROVED.value
                ]
                if reopened:
                    await self.rows.update_many(
                        {"_id": {"$in": reopened}},
                        {"$set": {
                            "status": RowStatus.REJECTED.value,
                            "locked": False,
                            "updated_at": now,
                        }},
                        session=self.session,
                    )
                    await self.set_entry_status_for_rows(
                        reopened, EntryStatus.REJECTED.value, now
                    )

                await self.timesheets.update_one(
                    {"_id": timesheet_doc["_id"]},
                    {"$set": {"status": TimesheetStatus.REJECTED.value, "updated_at": now}},
                    session=self.session,
                )
                await ApprovalService(self.db, self.session).record_decision(
                    company_id,
                    timesheet_doc["_id"],
                    approver_id,
                    ApprovalStatus.REJECTED,
                    reason=reason,
                )

                await HistoryService(self.db, self.session).record_event(
                    company_id,
                    HistoryEventCreate(
                        user_id=timesheet_doc["user_id"],
                        target_type=HistoryTarget.TIMESHEET,
                        target_id=str(timesheet_doc["_id"]),
                        action=HistoryAction.REJECTED,
                        actor_user_id=approver_id,
                        reason=reason.strip(),
                        metadata={"rows": len(reopened)},
                    ),
                )

        logger.info("Timesheet %s rejected by %s", timesheet_id, approver_id)
        return await self.get_timesheet(company_id, timesheet_id)

    async def list_history(self, company_id: str, timesheet_id: str) -> list[HistoryEvent]:
        """History events of a timesheet, most recent first."""
        await self.find_timesheet_doc(company_id, timesheet_id)
        return await HistoryService(self.db, self.session).list_for_target(
            company_id, HistoryTarget.TIMESHEET, timesheet_id
        )
