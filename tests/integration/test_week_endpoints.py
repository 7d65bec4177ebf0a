"""Integration tests for week endpoints."""
import pytest
from datetime import datetime, timezone


WEEK_URL = "/timesheet/weeks/2024-01-01/timesheet"
SUBMIT_URL = "/timesheet/weeks/2024-01-01/submit"


async def _seed_settings(mongo_db):
    await mongo_db["company_settings"].insert_one(
        {
            "company_id": "acme",
            "default_country_code": "GB",
            "office_country_codes": ["GB", "IE"],
        }
    )


def _row_payload(**extra):
    payload = {
        "activity_label": "Development",
        "time_code_id": "tc-dev",
        "entries": [
            {"day": "2024-01-01", "minutes": 240},
            {"day": "2024-01-02", "minutes": 120},
        ],
    }
    payload.update(extra)
    return payload


@pytest.mark.asyncio
class TestGetWeek:
    """Tests for GET /timesheet/weeks/{week_start}/timesheet."""

    async def test_get_week_creates_timesheet(self, app_client, mongo_db, auth_headers):
        await _seed_settings(mongo_db)

        response = await app_client.get(WEEK_URL, headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["week_start"] == "2024-01-01"
        assert data["week_end"] == "2024-01-07"
        assert data["status"] == "DRAFT"
        assert data["total_minutes"] == 0
        assert data["rows"] == []
        assert data["settings"]["office_country_codes"] == ["GB", "IE"]
        assert data["settings"]["auto_submit_at"] == "18:00"

    async def test_get_week_backfills_legacy_entries(self, app_client, mongo_db, auth_headers):
        """Test flat entries recorded before rows existed show up as rows."""
        await _seed_settings(mongo_db)
        first = (await app_client.get(WEEK_URL, headers=auth_headers)).json()

        from bson import ObjectId
        now = datetime.now(timezone.utc)
        await mongo_db["timesheet_entries"].insert_many(
            [
                {
                    "company_id": "acme",
                    "user_id": "user-1",
                    "timesheet_id": ObjectId(first["timesheet_id"]),
                    "time_code_id": "tc-dev",
                    "day": day,
                    "duration_min": minutes,
                    "work_mode": "office",
                    "country": "GB",
                    "status": "SAVED",
                    "created_at": now,
                    "updated_at": now,
                }
                for day, minutes in [("2024-01-01", 240), ("2024-01-01", 120)]
            ]
        )

        response = await app_client.get(WEEK_URL, headers=auth_headers)

        data = response.json()
        assert data["total_minutes"] == 360
        assert len(data["rows"]) == 1
        assert data["rows"][0]["entries"] == [{"day": "2024-01-01", "minutes": 360, "note": None}]

    async def test_get_week_invalid_date(self, app_client, auth_headers):
        response = await app_client.get(
            "/timesheet/weeks/2024-13-01/timesheet", headers=auth_headers
        )

        assert response.status_code == 400
        assert "Invalid date" in response.json()["detail"]

    async def test_get_week_past_last_calendar_date(self, app_client, auth_headers):
        response = await app_client.get(
            "/timesheet/weeks/9999-12-30/timesheet", headers=auth_headers
        )

        assert response.status_code == 400
        assert "last calendar date" in response.json()["detail"]

    async def test_get_week_requires_auth(self, app_client):
        response = await app_client.get(WEEK_URL)

        assert response.status_code == 401

    async def test_weeks_are_per_user(self, app_client, mongo_db, auth_headers, make_headers):
        await _seed_settings(mongo_db)
        await app_client.put(WEEK_URL, json={"rows": [_row_payload()]}, headers=auth_headers)

        response = await app_client.get(WEEK_URL, headers=make_headers(user_id="user-2"))

        assert response.json()["rows"] == []


@pytest.mark.asyncio
class TestUpsertWeek:
    """Tests for PUT /timesheet/weeks/{week_start}/timesheet."""

    async def test_upsert_week(self, app_client, mongo_db, auth_headers):
        await _seed_settings(mongo_db)

        response = await app_client.put(
            WEEK_URL, json={"rows": [_row_payload()]}, headers=auth_headers
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total_minutes"] == 360
        row = data["rows"][0]
        assert row["activity_label"] == "Development"
        assert row["location"] == "Office"
        assert row["country_code"] == "GB"
        assert row["billable"] == "auto"
        assert row["status"] == "draft"
        assert row["locked"] is False
        assert "id" in row

    async def test_upsert_round_trip(self, app_client, mongo_db, auth_headers):
        """Test PUT-ing the returned rows back is a no-op."""
        await _seed_settings(mongo_db)
        first = (
            await app_client.put(WEEK_URL, json={"rows": [_row_payload()]}, headers=auth_headers)
        ).json()

        second = (
            await app_client.put(WEEK_URL, json={"rows": first["rows"]}, headers=auth_headers)
        ).json()

        assert second["rows"] == first["rows"]
        assert second["total_minutes"] == first["total_minutes"]

    async def test_upsert_validation_error(self, app_client, mongo_db, auth_headers):
        await _seed_settings(mongo_db)

        response = await app_client.put(
            WEEK_URL,
            json={"rows": [_row_payload(location="Hybrid", country_code="IE")]},
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert "employee country" in response.json()["detail"]

    async def test_upsert_unknown_row(self, app_client, mongo_db, auth_headers):
        from bson import ObjectId

        await _seed_settings(mongo_db)

        response = await app_client.put(
            WEEK_URL,
            json={"rows": [_row_payload(id=str(ObjectId()))]},
            headers=auth_headers,
        )

        assert response.status_code == 404

    async def test_upsert_missing_label(self, app_client, auth_headers):
        response = await app_client.put(
            WEEK_URL,
            json={"rows": [_row_payload(activity_label="")]},
            headers=auth_headers,
        )

        assert response.status_code == 422

    async def test_upsert_non_finite_minutes(self, app_client, mongo_db, auth_headers):
        """Test minutes that overflow to infinity are refused before saving."""
        await _seed_settings(mongo_db)
        body = (
            '{"rows": [{"activity_label": "Development", "time_code_id": "tc-dev",'
            ' "entries": [{"day": "2024-01-01", "minutes": 1e400}]}]}'
        )

        response = await app_client.put(
            WEEK_URL,
            content=body,
            headers={**auth_headers, "Content-Type": "application/json"},
        )

        assert response.status_code == 422
        assert await mongo_db["timesheet_rows"].count_documents({}) == 0

    async def test_upsert_locked_row(self, app_client, mongo_db, auth_headers):
        await _seed_settings(mongo_db)
        first = (
            await app_client.put(WEEK_URL, json={"rows": [_row_payload()]}, headers=auth_headers)
        ).json()
        await app_client.post(SUBMIT_URL, headers=auth_headers)

        response = await app_client.put(
            WEEK_URL,
            json={"rows": [_row_payload(id=first["rows"][0]["id"])]},
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert "locked" in response.json()["detail"]


@pytest.mark.asyncio
class TestSubmitWeek:
    """Tests for POST /timesheet/weeks/{week_start}/submit."""

    async def test_submit_week(self, app_client, mongo_db, auth_headers):
        await _seed_settings(mongo_db)
        await app_client.put(WEEK_URL, json={"rows": [_row_payload()]}, headers=auth_headers)

        response = await app_client.post(SUBMIT_URL, headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "SUBMITTED"
        assert data["rows"][0]["status"] == "submitted"
        assert data["rows"][0]["locked"] is True

    async def test_submit_empty_week_without_force(self, app_client, auth_headers):
        response = await app_client.post(SUBMIT_URL, json={"force": False}, headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "DRAFT"

    async def test_submit_empty_week_with_force(self, app_client, auth_headers):
        response = await app_client.post(SUBMIT_URL, json={"force": True}, headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "SUBMITTED"
