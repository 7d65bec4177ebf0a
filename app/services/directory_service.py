"""Lookups against the user directory and the time-code catalog."""
from typing import Optional

from bson import ObjectId

from app.models.company import TimeCode


class DirectoryService:
    """Read-only access to users and time codes owned by other services."""

    def __init__(self, db, session=None):
        """Initialize service with database connection."""
        self.db = db
        self.session = session
        self.users = db["users"]
        self.time_codes = db["time_codes"]

    @staticmethod
    def _lookup_id(value: str):
        # Documents may be keyed by ObjectId or by an external string id.
        if isinstance(value, str) and ObjectId.is_valid(value):
            return {"$in": [ObjectId(value), value]}
        return value

    async def get_user_display_name(self, company_id: str, user_id: str) -> Optional[str]:
        """
        Display name of a user of the company.

        Returns:
            The user's name, or None if the user is unknown
        """
        doc = await self.users.find_one(
            {"_id": self._lookup_id(user_id), "company_id": company_id},
            session=self.session,
        )
        if not doc:
            return None
        return doc.get("name")

    async def get_time_code(self, company_id: str, time_code_id: str) -> Optional[TimeCode]:
        """
        Catalog entry of a time code.

        Returns:
            The time code, or None if it is not in the company catalog
        """
        doc = await self.time_codes.find_one(
            {"_id": self._lookup_id(time_code_id), "company_id": company_id},
            session=self.session,
        )
        if not doc:
            return None

        return TimeCode(
            _id=str(doc["_id"]),
            company_id=doc["company_id"],
            code=doc.get("code", ""),
            name=doc.get("name"),
            billable_default=doc.get("billable_default", "AUTO"),
            type=doc.get("type"),
        )
