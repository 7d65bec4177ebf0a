"""Approval service - who approves a timesheet and what they decided."""
import logging
from typing import Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.exceptions import NotFoundError, ValidationError
from app.models.approval import (
    ApprovalStatus,
    TimesheetApproval,
    TimesheetApprovalCreate,
    TimesheetApprovalUpdate,
)
from app.services.store import TimesheetStore, to_object_id, utcnow

logger = logging.getLogger(__name__)


def doc_to_approval(doc: dict) -> TimesheetApproval:
    """Convert database document to TimesheetApproval model."""
    return TimesheetApproval(
        _id=str(doc["_id"]),
        company_id=doc["company_id"],
        timesheet_id=str(doc["timesheet_id"]),
        approver_id=doc["approver_id"],
        status=doc.get("status", ApprovalStatus.PENDING.value),
        reason=doc.get("reason"),
        decided_at=doc.get("decided_at"),
        created_at=doc["created_at"],
        updated_at=doc["updated_at"],
    )


def _decision_fields(status: ApprovalStatus, reason: Optional[str]) -> dict:
    """
    Fields written for a decision.

    Raises:
        ValidationError: If a rejection has no reason
    """
    reason = reason.strip() if reason and reason.strip() else None
    if status == ApprovalStatus.REJECTED and reason is None:
        raise ValidationError("A rejection reason is required")

    now = utcnow()
    return {
        "status": status.value,
        "reason": reason,
        "decided_at": now if status != ApprovalStatus.PENDING else None,
        "updated_at": now,
    }


class ApprovalService(TimesheetStore):
    """Service for per-approver approval records."""

    def __init__(self, db, session=None):
        """Initialize service with database connection."""
        super().__init__(db, session)
        self.approvals = db["timesheet_approvals"]

    async def _find_approval_doc(self, company_id: str, approval_id: str) -> dict:
        doc = await self.approvals.find_one(
            {"_id": to_object_id(approval_id, "Timesheet approval"), "company_id": company_id},
            session=self.session,
        )
        if not doc:
            raise NotFoundError("Timesheet approval not found")
        return doc

    async def create_approval(
        self, company_id: str, approval_create: TimesheetApprovalCreate
    ) -> TimesheetApproval:
        """
        Assign an approver to a timesheet.

        The approval starts PENDING. A timesheet has at most one approval
        per approver.

        Raises:
            NotFoundError: If the timesheet does not exist in the company
            ValidationError: If the approver is already assigned
        """
        timesheet_doc = await self.find_timesheet_doc(company_id, approval_create.timesheet_id)
        key = {
            "company_id": company_id,
            "timesheet_id": timesheet_doc["_id"],
            "approver_id": approval_create.approver_id,
        }
        duplicate = "An approval for this timesheet and approver already exists"
        if await self.approvals.find_one(key, session=self.session):
            raise ValidationError(duplicate)

        now = utcnow()
        approval_doc = {
            **key,
            "status": ApprovalStatus.PENDING.value,
            "reason": None,
            "decided_at": None,
            "created_at": now,
            "updated_at": now,
        }
        try:
            result = await self.approvals.insert_one(approval_doc, session=self.session)
        except DuplicateKeyError:
            raise ValidationError(duplicate)
        approval_doc["_id"] = result.inserted_id

        logger.info(
            "Assigned approver %s to timesheet %s",
            approval_create.approver_id,
            timesheet_doc["_id"],
        )
        return doc_to_approval(approval_doc)

    async def get_approval(self, company_id: str, approval_id: str) -> TimesheetApproval:
        """
        Get an approval of the company.

        Raises:
            NotFoundError: If the approval does not exist in the company
        """
        return doc_to_approval(await self._find_approval_doc(company_id, approval_id))

    async def update_approval(
        self, company_id: str, approval_id: str, approval_update: TimesheetApprovalUpdate
    ) -> TimesheetApproval:
        """
        Record an approver's decision.

        Moving back to PENDING clears the decision time.

        Raises:
            NotFoundError: If the approval does not exist in the company
            ValidationError: If a rejection has no reason
        """
        approval_doc = await self._find_approval_doc(company_id, approval_id)
        fields = _decision_fields(approval_update.status, approval_update.reason)

        updated = await self.approvals.find_one_and_update(
            {"_id": approval_doc["_id"]},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
            session=self.session,
        )
        if updated is None:
            raise NotFoundError("Timesheet approval not found after update")
        return doc_to_approval(updated)

    async def delete_approval(self, company_id: str, approval_id: str) -> dict:
        """
        Delete an approval.

        Returns:
            Dictionary with deleted_count

        Raises:
            NotFoundError: If the approval does not exist in the company
        """
        approval_doc = await self._find_approval_doc(company_id, approval_id)
        result = await self.approvals.delete_one(
            {"_id": approval_doc["_id"]}, session=self.session
        )
        return {"deleted_count": result.deleted_count}

    async def list_for_timesheet(
        self, company_id: str, timesheet_id: str
    ) -> list[TimesheetApproval]:
        """
        Approvals of a timesheet, oldest first.

        Raises:
            NotFoundError: If the timesheet does not exist in the company
        """
        timesheet_doc = await self.find_timesheet_doc(company_id, timesheet_id)
        return await self._list({"company_id": company_id, "timesheet_id": timesheet_doc["_id"]})

    async def list_for_approver(
        self, company_id: str, approver_id: str
    ) -> list[TimesheetApproval]:
        """Approvals assigned to an approver, oldest first."""
        return await self._list({"company_id": company_id, "approver_id": approver_id})

    async def _list(self, query: dict) -> list[TimesheetApproval]:
        cursor = self.approvals.find(query, session=self.session)
        docs = await cursor.sort([("created_at", 1), ("_id", 1)]).to_list(length=None)
        return [doc_to_approval(doc) for doc in docs]

    async def record_decision(
        self,
        company_id: str,
        timesheet_oid: ObjectId,
        approver_id: str,
        status: ApprovalStatus,
        reason: Optional[str] = None,
    ) -> None:
        """
        Write an approver's decision, assigning them if needed.

        Used by the timesheet approve and reject transitions.
        """
        now = utcnow()
        await self.approvals.update_one(
            {"company_id": company_id, "timesheet_id": timesheet_oid, "approver_id": approver_id},
            {
                "$set": _decision_fields(status, reason),
                "$setOnInsert": {"created_at": now},
            },
            upsert=True,
            session=self.session,
        )
