"""History service - append-only audit trail of timesheet actions."""
import logging
from typing import Optional

from app.models.history import HistoryAction, HistoryEvent, HistoryEventCreate, HistoryTarget
from app.services.store import utcnow

logger = logging.getLogger(__name__)


class HistoryService:
    """Service for recording and reading timesheet history events."""

    def __init__(self, db, session=None):
        """Initialize service with database connection."""
        self.db = db
        self.session = session
        self.history = db["timesheet_history"]

    def _doc_to_event(self, doc: dict) -> HistoryEvent:
        """Convert database document to HistoryEvent model."""
        return HistoryEvent(
            _id=str(doc["_id"]),
            company_id=doc["company_id"],
            user_id=doc["user_id"],
            target_type=doc["target_type"],
            target_id=doc["target_id"],
            action=doc["action"],
            actor_user_id=doc.get("actor_user_id"),
            reason=doc.get("reason"),
            diff=doc.get("diff"),
            metadata=doc.get("metadata"),
            occurred_at=doc["occurred_at"],
        )

    async def record_event(self, company_id: str, event: HistoryEventCreate) -> None:
        """
        Append a history event.

        Best-effort: a failing append is logged and never fails the
        workflow step that triggered it.

        Args:
            company_id: Company ID
            event: Event data
        """
        event_doc = {
            "company_id": company_id,
            "user_id": event.user_id,
            "target_type": event.target_type.value,
            "target_id": event.target_id,
            "action": event.action.value,
            "actor_user_id": event.actor_user_id,
            "reason": event.reason,
            "diff": event.diff,
            "metadata": event.metadata,
            "occurred_at": utcnow(),
        }

        try:
            await self.history.insert_one(event_doc, session=self.session)
        except Exception:
            logger.exception(
                "Failed to record %s history event for %s %s",
                event.action.value,
                event.target_type.value,
                event.target_id,
            )

    async def list_for_target(
        self,
        company_id: str,
        target_type: HistoryTarget,
        target_id: str,
    ) -> list[HistoryEvent]:
        """
        List history events of one target, most recent first.

        Args:
            company_id: Company ID
            target_type: Kind of target
            target_id: Target ID

        Returns:
            List of history events
        """
        cursor = self.history.find(
            {
                "company_id": company_id,
                "target_type": target_type.value,
                "target_id": target_id,
            },
            session=self.session,
        ).sort("occurred_at", -1)
        docs = await cursor.to_list(length=None)
        return [self._doc_to_event(doc) for doc in docs]

    async def latest_event(
        self,
        company_id: str,
        target_type: HistoryTarget,
        target_id: str,
        action: HistoryAction,
    ) -> Optional[HistoryEvent]:
        """Most recent event of one action for a target, if any."""
        cursor = self.history.find(
            {
                "company_id": company_id,
                "target_type": target_type.value,
                "target_id": target_id,
                "action": action.value,
            },
            session=self.session,
        ).sort("occurred_at", -1)
        docs = await cursor.to_list(length=1)
        if not docs:
            return None
        return self._doc_to_event(docs[0])
