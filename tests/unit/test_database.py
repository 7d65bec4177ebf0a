"""Tests for index setup and the transaction helper."""
import pytest
from unittest.mock import AsyncMock, MagicMock


@pytest.mark.asyncio
class TestEnsureIndexes:
    """Tests for ensure_indexes."""

    async def test_unique_indexes(self):
        from app.database import ensure_indexes

        collections = {}

        def collection(name):
            return collections.setdefault(name, AsyncMock())

        mock_db = MagicMock()
        mock_db.__getitem__.side_effect = collection

        await ensure_indexes(mock_db)

        timesheet_index = collections["timesheets"].create_index.call_args
        assert [key for key, _ in timesheet_index[0][0]] == [
            "company_id",
            "user_id",
            "period_start",
            "period_end",
        ]
        assert timesheet_index[1]["unique"] is True

        entry_calls = collections["timesheet_entries"].create_index.call_args_list
        unique_entry = [call for call in entry_calls if call[1].get("unique")]
        assert len(unique_entry) == 1
        assert unique_entry[0][1]["partialFilterExpression"] == {
            "timesheet_row_id": {"$type": "objectId"}
        }

        approval_calls = collections["timesheet_approvals"].create_index.call_args_list
        unique_approval = [call for call in approval_calls if call[1].get("unique")]
        assert len(unique_approval) == 1
        assert [key for key, _ in unique_approval[0][0][0]] == [
            "company_id",
            "timesheet_id",
            "approver_id",
        ]


@pytest.mark.asyncio
class TestTransaction:
    """Tests for the transaction context manager."""

    async def test_disabled_yields_no_session(self, monkeypatch):
        from app.config import settings
        from app.database import transaction

        monkeypatch.setattr(settings, "mongodb_transactions", False)
        mock_db = MagicMock()

        async with transaction(mock_db) as session:
            assert session is None

        mock_db.client.start_session.assert_not_called()

    async def test_enabled_opens_session_and_transaction(self, monkeypatch):
        from app.config import settings
        from app.database import transaction

        monkeypatch.setattr(settings, "mongodb_transactions", True)
        mock_session = MagicMock()
        mock_session.__aenter__.return_value = mock_session
        mock_db = MagicMock()
        mock_db.client.start_session = AsyncMock(return_value=mock_session)

        async with transaction(mock_db) as session:
            assert session is mock_session

        mock_session.start_transaction.assert_called_once_with()
