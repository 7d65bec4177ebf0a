"""Pytest configuration and fixtures."""
import os

os.environ.setdefault("MONGODB_URL", "mongodb://localhost:27017")
os.environ.setdefault("JWT_SECRET", "test-secret-key")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from mongomock_motor import AsyncMongoMockClient

from app.main import app


COMPANY_ID = "acme"
USER_ID = "user-1"
APPROVER_ID = "manager-1"


@pytest.fixture
def mongo_db():
    """In-memory Motor-compatible database, fresh for every test."""
    return AsyncMongoMockClient()["timesheets_test"]


@pytest_asyncio.fixture
async def app_client(mongo_db):
    """
    Create a test client backed by the in-memory database.

    This fixture:
    - Points the database dependency at a clean database
    - Yields an async HTTP client for testing
    - Restores the original database afterwards
    """
    # Override the database dependency
    from app.database import database
    original_db = database.db
    database.db = mongo_db

    # Create HTTP client
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as client:
        yield client

    # Restore original database
    database.db = original_db


@pytest.fixture
def make_headers():
    """Build the authorization header of any user of any company."""
    from app.utils.auth import create_access_token

    def _make(user_id: str = USER_ID, company_id: str = COMPANY_ID) -> dict:
        token = create_access_token(user_id=user_id, company_id=company_id)
        return {"Authorization": f"Bearer {token}"}

    return _make


@pytest.fixture
def auth_headers(make_headers):
    """Authorization header of the timesheet owner."""
    return make_headers()


@pytest.fixture
def approver_headers(make_headers):
    """Authorization header of a manager of the same company."""
    return make_headers(user_id=APPROVER_ID)
