"""Rejection info projection for display."""
import logging
from typing import Optional

from app.models.history import HistoryAction, HistoryTarget
from app.models.week import Rejection
from app.services.directory_service import DirectoryService
from app.services.history_service import HistoryService

logger = logging.getLogger(__name__)


class RejectionService:
    """Reconstructs the last rejection of a timesheet. Never writes."""

    def __init__(self, db, session=None):
        """Initialize service with database connection."""
        self.history_service = HistoryService(db, session)
        self.directory_service = DirectoryService(db, session)

    async def get_rejection(self, company_id: str, timesheet_id: str) -> Optional[Rejection]:
        """
        Last rejection event of a timesheet.

        The actor name is best-effort: when the directory lookup fails
        the name is left out.

        Args:
            company_id: Company ID
            timesheet_id: Timesheet ID

        Returns:
            Rejection info, or None if the timesheet was never rejected
        """
        event = await self.history_service.latest_event(
            company_id,
            HistoryTarget.TIMESHEET,
            timesheet_id,
            HistoryAction.REJECTED,
        )
        if event is None:
            return None

        actor_name = None
        if event.actor_user_id:
            try:
                actor_name = await self.directory_service.get_user_display_name(
                    company_id, event.actor_user_id
                )
            except Exception:
                logger.debug("Could not resolve name of user %s", event.actor_user_id, exc_info=True)

        return Rejection(
            reason=event.reason,
            actor_id=event.actor_user_id,
            actor_name=actor_name,
            occurred_at=event.occurred_at,
        )
