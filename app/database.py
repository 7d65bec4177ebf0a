"""MongoDB database connection using Motor (async driver)."""
import logging
from contextlib import asynccontextmanager

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from app.config import settings

logger = logging.getLogger(__name__)


class Database:
    """MongoDB database connection manager."""

    client: AsyncIOMotorClient | None = None
    db: AsyncIOMotorDatabase | None = None

    async def connect(self) -> None:
        """Connect to MongoDB and make sure the indexes exist."""
        self.client = AsyncIOMotorClient(settings.mongodb_url)
        self.db = self.client[settings.mongodb_db_name]
        await ensure_indexes(self.db)
        logger.info("Connected to MongoDB: %s", settings.mongodb_db_name)

    async def disconnect(self) -> None:
        """Disconnect from MongoDB."""
        if self.client:
            self.client.close()
            logger.info("Disconnected from MongoDB")


# Global database instance
database = Database()


async def get_database() -> AsyncIOMotorDatabase:
    """Dependency to get database instance."""
    if database.db is None:
        raise RuntimeError("Database not connected")
    return database.db


async def ensure_indexes(db) -> None:
    """Create the indexes the timesheet collections rely on."""
    await db["timesheets"].create_index(
        [
            ("company_id", ASCENDING),
            ("user_id", ASCENDING),
            ("period_start", ASCENDING),
            ("period_end", ASCENDING),
        ],
        unique=True,
    )
    await db["timesheet_rows"].create_index(
        [("timesheet_id", ASCENDING), ("sort_order", ASCENDING)]
    )
    await db["timesheet_entries"].create_index(
        [("timesheet_row_id", ASCENDING), ("day", ASCENDING)],
        unique=True,
        partialFilterExpression={"timesheet_row_id": {"$type": "objectId"}},
    )
    await db["timesheet_entries"].create_index(
        [("company_id", ASCENDING), ("timesheet_id", ASCENDING)]
    )
    await db["timesheet_history"].create_index(
        [
            ("company_id", ASCENDING),
            ("target_type", ASCENDING),
            ("target_id", ASCENDING),
            ("occurred_at", DESCENDING),
        ]
    )
    await db["timesheet_approvals"].create_index(
        [
            ("company_id", ASCENDING),
            ("timesheet_id", ASCENDING),
            ("approver_id", ASCENDING),
        ],
        unique=True,
    )
    await db["timesheet_approvals"].create_index(
        [("company_id", ASCENDING), ("approver_id", ASCENDING)]
    )


@asynccontextmanager
async def transaction(db):
    """
    Run a block inside a MongoDB transaction.

    Yields the client session to pass to every collection call, or None
    when transactions are disabled in settings.
    """
    client = getattr(db, "client", None)
    if not settings.mongodb_transactions or client is None:
        yield None
        return

    async with await client.start_session() as session:
        async with session.start_transaction():
            yield session
