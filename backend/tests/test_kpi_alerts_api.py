"""
API Integration Tests — KPI alert and task endpoints with seeded data.
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from db.models import KpiAlert, KpiAlertLog


@pytest.fixture
async def seeded_logs(test_db, seeded_db, make_alert):
    """Two alerts with three trigger logs spread over three days."""
    mine = await make_alert([{"field_id": "temp", "type": "numeric", "max": 5}])
    theirs = await make_alert(
        [{"field_id": "temp", "type": "numeric", "max": 5}],
        todolist=seeded_db["other_todolist"],
    )
    base = datetime(2026, 10, 1, 8, 0, tzinfo=timezone.utc)
    logs = [
        KpiAlertLog(alert_id=mine.id, triggered_value=7, triggered_at=base, email_sent=True, email_sent_at=base),
        KpiAlertLog(alert_id=mine.id, triggered_value=9, triggered_at=base + timedelta(days=2)),
        KpiAlertLog(
            alert_id=theirs.id,
            triggered_value=6,
            triggered_at=base + timedelta(days=1),
            error_message="SendGrid rejected the message with status 503",
        ),
    ]
    test_db.add_all(logs)
    await test_db.commit()
    return {"mine": mine, "theirs": theirs, "base": base, **seeded_db}


@pytest.mark.asyncio
class TestKpiAlertsApi:
    async def test_create_alert(self, client: AsyncClient, seeded_db):
        body = {
            "kpi_id": str(seeded_db["kpi"].id),
            "todolist_id": str(seeded_db["todolist"].id),
            "email": "ops@example.com",
            "conditions": [
                {"field_id": "temp", "type": "numeric", "max": 5},
                {"field_id": "door", "type": "boolean", "boolean_value": True},
            ],
        }
        resp = await client.post("/api/v1/kpi-alerts/", json=body)
        assert resp.status_code == 201
        data = resp.json()
        assert data["is_active"] is True
        assert [c["field_id"] for c in data["conditions"]] == ["temp", "door"]
        assert "min" not in data["conditions"][0]

    async def test_create_rejects_invalid_email(self, client: AsyncClient, seeded_db):
        body = {
            "kpi_id": str(seeded_db["kpi"].id),
            "todolist_id": str(seeded_db["todolist"].id),
            "email": "not-an-address",
            "conditions": [],
        }
        resp = await client.post("/api/v1/kpi-alerts/", json=body)
        assert resp.status_code == 422

    async def test_create_rejects_unknown_condition_type(self, client: AsyncClient, seeded_db):
        body = {
            "kpi_id": str(seeded_db["kpi"].id),
            "todolist_id": str(seeded_db["todolist"].id),
            "email": "ops@example.com",
            "conditions": [{"field_id": "temp", "type": "regex"}],
        }
        resp = await client.post("/api/v1/kpi-alerts/", json=body)
        assert resp.status_code == 422

    async def test_list_filters_by_todolist(self, client: AsyncClient, seeded_logs):
        resp = await client.get(f"/api/v1/kpi-alerts/?todolist_id={seeded_logs['todolist'].id}")
        assert resp.status_code == 200
        assert [a["id"] for a in resp.json()] == [str(seeded_logs["mine"].id)]

    async def test_toggle_active(self, client: AsyncClient, seeded_logs, test_db):
        alert_id = seeded_logs["mine"].id
        resp = await client.patch(f"/api/v1/kpi-alerts/{alert_id}/active", json={"is_active": False})
        assert resp.status_code == 200
        assert resp.json()["is_active"] is False

    async def test_toggle_unknown_alert_is_404(self, client: AsyncClient, seeded_db):
        resp = await client.patch(f"/api/v1/kpi-alerts/{uuid.uuid4()}/active", json={"is_active": False})
        assert resp.status_code == 404

    async def test_delete_removes_alert_and_logs(self, client: AsyncClient, seeded_logs, test_db):
        alert_id = seeded_logs["mine"].id
        resp = await client.delete(f"/api/v1/kpi-alerts/{alert_id}")
        assert resp.status_code == 204

        remaining = (await test_db.execute(select(KpiAlert.id))).scalars().all()
        assert alert_id not in remaining
        logs = (await test_db.execute(select(KpiAlertLog).where(KpiAlertLog.alert_id == alert_id))).scalars().all()
        assert logs == []

    async def test_delete_unknown_alert_is_404(self, client: AsyncClient, seeded_db):
        resp = await client.delete(f"/api/v1/kpi-alerts/{uuid.uuid4()}")
        assert resp.status_code == 404

    async def test_logs_newest_first(self, client: AsyncClient, seeded_logs):
        resp = await client.get("/api/v1/kpi-alerts/logs")
        assert resp.status_code == 200
        values = [log["triggered_value"] for log in resp.json()]
        assert values == [9, 6, 7]

    async def test_logs_carry_alert_kpi_and_device_details(self, client: AsyncClient, seeded_logs):
        resp = await client.get(f"/api/v1/kpi-alerts/logs?alert_id={seeded_logs['mine'].id}")
        assert resp.status_code == 200
        newest = resp.json()[0]
        assert newest["email"] == "ops@example.com"
        assert newest["conditions"] == [{"field_id": "temp", "type": "numeric", "max": 5}]
        assert newest["kpi_name"] == "Temperature"
        assert newest["kpi_description"] == "Cold room temperature in °C"
        assert newest["device_name"] == "Cold Room 1"
        assert newest["device_location"] == "Kitchen, basement"

    async def test_logs_filters(self, client: AsyncClient, seeded_logs):
        resp = await client.get(f"/api/v1/kpi-alerts/logs?todolist_id={seeded_logs['other_todolist'].id}")
        data = resp.json()
        assert len(data) == 1
        assert data[0]["error_message"].endswith("503")
        assert data[0]["email_sent"] is False

        resp = await client.get(f"/api/v1/kpi-alerts/logs?alert_id={seeded_logs['mine'].id}&limit=1")
        assert [log["triggered_value"] for log in resp.json()] == [9]

        resp = await client.get(f"/api/v1/kpi-alerts/logs?kpi_id={seeded_logs['kpi'].id}")
        assert len(resp.json()) == 3

    async def test_logs_date_range(self, client: AsyncClient, seeded_logs):
        base = seeded_logs["base"]
        params = {
            "start_date": (base + timedelta(hours=12)).isoformat(),
            "end_date": (base + timedelta(days=1, hours=12)).isoformat(),
        }
        resp = await client.get("/api/v1/kpi-alerts/logs", params=params)
        assert [log["triggered_value"] for log in resp.json()] == [6]

    async def test_manual_check(self, client: AsyncClient, seeded_db, make_alert, sent_emails):
        alert = await make_alert([{"field_id": "kpi42-pressure", "type": "numeric", "max": 100}])
        body = {
            "kpi_id": str(seeded_db["kpi"].id),
            "todolist_id": str(seeded_db["todolist"].id),
            "value": {"id": "kpi42-pressure", "value": 150},
        }
        resp = await client.post("/api/v1/kpi-alerts/check", json=body)
        assert resp.status_code == 200
        (result,) = resp.json()["results"]
        assert result["alert_id"] == str(alert.id)
        assert result["state"] == "triggered"
        assert result["triggered_value"] == 150
        assert result["log_id"] is not None
        assert len(sent_emails) == 1


@pytest.mark.asyncio
class TestTasksApi:
    async def test_complete_task_triggers_alert(self, client: AsyncClient, seeded_db, make_alert, sent_emails):
        await make_alert([{"field_id": "temp", "type": "numeric", "max": 5}])
        task_id = seeded_db["task"].id

        resp = await client.patch(f"/api/v1/tasks/{task_id}/status", json={"status": "completed"})

        assert resp.status_code == 200
        assert resp.json()["alert_checked"] is True
        assert len(sent_emails) == 1

    async def test_complete_task_survives_alert_failure(
        self, client: AsyncClient, seeded_db, make_alert, failing_email
    ):
        await make_alert([{"field_id": "temp", "type": "numeric", "max": 5}])
        task_id = seeded_db["task"].id

        resp = await client.patch(f"/api/v1/tasks/{task_id}/status", json={"status": "completed"})

        assert resp.status_code == 200
        assert resp.json()["status"] == "completed"

    async def test_set_value(self, client: AsyncClient, seeded_db):
        task_id = seeded_db["task"].id
        value = [{"id": "temp", "name": "Temp", "value": 4}]
        resp = await client.patch(f"/api/v1/tasks/{task_id}/value", json={"value": value})
        assert resp.status_code == 200
        assert resp.json()["value"] == value

    async def test_unknown_task_is_404(self, client: AsyncClient, seeded_db):
        resp = await client.patch(f"/api/v1/tasks/{uuid.uuid4()}/status", json={"status": "completed"})
        assert resp.status_code == 404

    async def test_invalid_status_is_422(self, client: AsyncClient, seeded_db):
        resp = await client.patch(f"/api/v1/tasks/{seeded_db['task'].id}/status", json={"status": "done"})
        assert resp.status_code == 422


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"
