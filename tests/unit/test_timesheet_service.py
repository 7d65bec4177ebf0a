"""Tests for TimesheetService workflow transitions."""
import pytest
import pytest_asyncio
from bson import ObjectId

from app.models.week import WeekEntryInput, WeekRowInput, WeekUpsert


COMPANY_ID = "acme"
USER_ID = "user-1"
APPROVER_ID = "manager-1"


@pytest_asyncio.fixture
async def submitted_week(mongo_db):
    """A week with one submitted row and one draft-only timesheet id."""
    from app.services.week_service import WeekService

    await mongo_db["company_settings"].insert_one(
        {"company_id": COMPANY_ID, "default_country_code": "GB"}
    )
    week_service = WeekService(mongo_db)
    await week_service.upsert_week(
        COMPANY_ID,
        USER_ID,
        "2024-01-01",
        WeekUpsert(
            rows=[
                WeekRowInput(
                    activity_label="Development",
                    time_code_id="tc-dev",
                    entries=[WeekEntryInput(day="2024-01-01", minutes=240)],
                )
            ]
        ),
    )
    return await week_service.submit_week(COMPANY_ID, USER_ID, "2024-01-01")


async def _draft_timesheet_id(mongo_db) -> str:
    from app.services.week_service import WeekService

    view = await WeekService(mongo_db).get_week(COMPANY_ID, USER_ID, "2024-01-08")
    return view.timesheet_id


@pytest.mark.asyncio
class TestGetTimesheet:
    """Tests for reading a timesheet."""

    async def test_get_timesheet(self, mongo_db, submitted_week):
        from app.services.timesheet_service import TimesheetService

        timesheet = await TimesheetService(mongo_db).get_timesheet(
            COMPANY_ID, submitted_week.timesheet_id
        )

        assert timesheet.id == submitted_week.timesheet_id
        assert timesheet.status.value == "SUBMITTED"
        assert timesheet.total_minutes == 240
        assert timesheet.period_start == "2024-01-01"

    @pytest.mark.parametrize("timesheet_id", ["not-an-id", str(ObjectId())])
    async def test_unknown_timesheet(self, mongo_db, timesheet_id):
        from app.exceptions import NotFoundError
        from app.services.timesheet_service import TimesheetService

        with pytest.raises(NotFoundError, match="Timesheet not found"):
            await TimesheetService(mongo_db).get_timesheet(COMPANY_ID, timesheet_id)

    async def test_other_company_cannot_read(self, mongo_db, submitted_week):
        from app.exceptions import NotFoundError
        from app.services.timesheet_service import TimesheetService

        with pytest.raises(NotFoundError):
            await TimesheetService(mongo_db).get_timesheet("globex", submitted_week.timesheet_id)


@pytest.mark.asyncio
class TestSubmitTimesheet:
    """Tests for the timesheet-level submit."""

    async def test_submit_draft(self, mongo_db):
        from app.services.timesheet_service import TimesheetService

        timesheet_id = await _draft_timesheet_id(mongo_db)

        timesheet = await TimesheetService(mongo_db).submit_timesheet(
            COMPANY_ID, timesheet_id, actor_id=USER_ID
        )

        assert timesheet.status.value == "SUBMITTED"
        assert timesheet.submitted_by == USER_ID
        assert timesheet.submitted_at is not None

    async def test_submit_twice(self, mongo_db, submitted_week):
        from app.exceptions import ValidationError
        from app.services.timesheet_service import TimesheetService

        with pytest.raises(ValidationError, match="not in draft status"):
            await TimesheetService(mongo_db).submit_timesheet(
                COMPANY_ID, submitted_week.timesheet_id, actor_id=USER_ID
            )


@pytest.mark.asyncio
class TestApproveTimesheet:
    """Tests for approving a timesheet."""

    async def test_approve_cascades_to_rows_and_entries(self, mongo_db, submitted_week):
        from app.services.timesheet_service import TimesheetService

        timesheet = await TimesheetService(mongo_db).approve_timesheet(
            COMPANY_ID, submitted_week.timesheet_id, approver_id=APPROVER_ID
        )

        assert timesheet.status.value == "APPROVED"
        assert timesheet.approver_id == APPROVER_ID
        assert timesheet.approved_at is not None

        row = await mongo_db["timesheet_rows"].find_one({"_id": ObjectId(submitted_week.rows[0].id)})
        assert row["status"] == "approved"
        assert row["locked"] is True
        entry = await mongo_db["timesheet_entries"].find_one({"timesheet_row_id": row["_id"]})
        assert entry["status"] == "APPROVED"

    async def test_approve_draft_fails(self, mongo_db):
        from app.exceptions import ValidationError
        from app.services.timesheet_service import TimesheetService

        timesheet_id = await _draft_timesheet_id(mongo_db)

        with pytest.raises(ValidationError, match="DRAFT"):
            await TimesheetService(mongo_db).approve_timesheet(
                COMPANY_ID, timesheet_id, approver_id=APPROVER_ID
            )

    async def test_approved_timesheet_cannot_be_rejected(self, mongo_db, submitted_week):
        from app.exceptions import ValidationError
        from app.services.timesheet_service import TimesheetService

        service = TimesheetService(mongo_db)
        await service.approve_timesheet(
            COMPANY_ID, submitted_week.timesheet_id, approver_id=APPROVER_ID
        )

        with pytest.raises(ValidationError):
            await service.reject_timesheet(
                COMPANY_ID, submitted_week.timesheet_id, approver_id=APPROVER_ID, reason="Late"
            )


@pytest.mark.asyncio
class TestRejectTimesheet:
    """Tests for rejecting a timesheet."""

    async def test_reject_reopens_rows(self, mongo_db, submitted_week):
        from app.services.timesheet_service import TimesheetService

        timesheet = await TimesheetService(mongo_db).reject_timesheet(
            COMPANY_ID,
            submitted_week.timesheet_id,
            approver_id=APPROVER_ID,
            reason="  Incorrect entries ",
        )

        assert timesheet.status.value == "REJECTED"
        row = await mongo_db["timesheet_rows"].find_one({"_id": ObjectId(submitted_week.rows[0].id)})
        assert row["status"] == "rejected"
        assert row["locked"] is False
        entry = await mongo_db["timesheet_entries"].find_one({"timesheet_row_id": row["_id"]})
        assert entry["status"] == "REJECTED"

        event = await mongo_db["timesheet_history"].find_one({"action": "rejected"})
        assert event["reason"] == "Incorrect entries"
        assert event["actor_user_id"] == APPROVER_ID

    async def test_reject_keeps_approved_rows(self, mongo_db, submitted_week):
        from app.services.timesheet_service import TimesheetService

        row_oid = ObjectId(submitted_week.rows[0].id)
        await mongo_db["timesheet_rows"].update_one(
            {"_id": row_oid}, {"$set": {"status": "approved"}}
        )

        await TimesheetService(mongo_db).reject_timesheet(
            COMPANY_ID, submitted_week.timesheet_id, approver_id=APPROVER_ID, reason="Wrong code"
        )

        row = await mongo_db["timesheet_rows"].find_one({"_id": row_oid})
        assert row["status"] == "approved"
        assert row["locked"] is True

    @pytest.mark.parametrize("reason", ["", "   "])
    async def test_reject_requires_reason(self, mongo_db, submitted_week, reason):
        from app.exceptions import ValidationError
        from app.services.timesheet_service import TimesheetService

        with pytest.raises(ValidationError, match="reason is required"):
            await TimesheetService(mongo_db).reject_timesheet(
                COMPANY_ID, submitted_week.timesheet_id, approver_id=APPROVER_ID, reason=reason
            )

    async def test_reject_draft_fails(self, mongo_db):
        from app.exceptions import ValidationError
        from app.services.timesheet_service import TimesheetService

        timesheet_id = await _draft_timesheet_id(mongo_db)

        with pytest.raises(ValidationError):
            await TimesheetService(mongo_db).reject_timesheet(
                COMPANY_ID, timesheet_id, approver_id=APPROVER_ID, reason="Wrong"
            )


@pytest.mark.asyncio
class TestListHistory:
    """Tests for the timesheet history."""

    async def test_list_history(self, mongo_db, submitted_week):
        from app.services.timesheet_service import TimesheetService

        service = TimesheetService(mongo_db)
        await service.reject_timesheet(
            COMPANY_ID, submitted_week.timesheet_id, approver_id=APPROVER_ID, reason="Wrong"
        )

        events = await service.list_history(COMPANY_ID, submitted_week.timesheet_id)

        assert {event.action.value for event in events} == {
            "created",
            "updated",
            "submitted",
            "rejected",
        }
        assert all(event.target_id == submitted_week.timesheet_id for event in events)
        occurred = [event.occurred_at for event in events]
        assert occurred == sorted(occurred, reverse=True)
