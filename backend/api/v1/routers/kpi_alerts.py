"""
KPI Alerts Router — Alert rule management, trigger logs, and manual checks.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel, EmailStr
from sqlalchemy.ext.asyncio import AsyncSession

from alerts import repository
from alerts.conditions import ConditionType
from alerts.engine import scan_alerts
from alerts.errors import AlertNotFoundError
from api.deps import get_db
from core.config import get_settings

router = APIRouter(prefix="/api/v1/kpi-alerts", tags=["kpi-alerts"])
logger = structlog.get_logger()


# ─── Schemas ────────────────────────────────────────────────────────────────


class AlertConditionIn(BaseModel):
    field_id: str
    type: ConditionType
    min: float | None = None
    max: float | None = None
    match_text: str | None = None
    boolean_value: bool | None = None


class KpiAlertCreate(BaseModel):
    kpi_id: UUID
    todolist_id: UUID
    email: EmailStr
    conditions: list[AlertConditionIn]
    is_active: bool = True


class KpiAlertResponse(BaseModel):
    id: UUID
    kpi_id: UUID
    todolist_id: UUID
    is_active: bool
    email: str
    conditions: list[dict[str, Any]]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ActiveToggle(BaseModel):
    is_active: bool


class KpiAlertLogResponse(BaseModel):
    id: UUID
    alert_id: UUID
    triggered_value: Any
    triggered_at: datetime
    email_sent: bool
    email_sent_at: datetime | None
    error_message: str | None
    email: str
    conditions: list[dict[str, Any]]
    kpi_name: str | None = None
    kpi_description: str | None = None
    device_name: str | None = None
    device_location: str | None = None


class AlertCheckRequest(BaseModel):
    kpi_id: UUID
    todolist_id: UUID
    value: Any = None


class AlertCheckOutcome(BaseModel):
    alert_id: UUID
    state: str
    triggered_value: Any = None
    log_id: UUID | None = None
    error: str | None = None


class AlertCheckResponse(BaseModel):
    kpi_id: UUID
    todolist_id: UUID
    results: list[AlertCheckOutcome]


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.post("/", response_model=KpiAlertResponse, status_code=201)
async def create_alert(body: KpiAlertCreate, db: AsyncSession = Depends(get_db)):
    """Create an alert rule. Condition order is evaluation order."""
    alert = await repository.insert_alert(
        db,
        kpi_id=body.kpi_id,
        todolist_id=body.todolist_id,
        email=str(body.email),
        conditions=[c.model_dump(exclude_none=True) for c in body.conditions],
        is_active=body.is_active,
    )
    logger.info("alert.created", alert_id=str(alert.id), kpi_id=str(alert.kpi_id))
    return alert


@router.get("/", response_model=list[KpiAlertResponse])
async def list_alerts(
    kpi_id: UUID | None = None,
    todolist_id: UUID | None = None,
    db: AsyncSession = Depends(get_db),
):
    """List alert rules, optionally filtered by KPI or todolist."""
    return await repository.list_alerts(db, kpi_id=kpi_id, todolist_id=todolist_id)


@router.get("/logs", response_model=list[KpiAlertLogResponse])
async def list_alert_logs(
    alert_id: UUID | None = None,
    kpi_id: UUID | None = None,
    todolist_id: UUID | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    limit: int | None = Query(None, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    """Trigger history, newest first, with alert, KPI and device details."""
    rows = await repository.query_logs(
        db,
        alert_id=alert_id,
        kpi_id=kpi_id,
        todolist_id=todolist_id,
        start_date=start_date,
        end_date=end_date,
        limit=limit or get_settings().alert_log_default_limit,
    )
    return [
        KpiAlertLogResponse(
            id=row.id,
            alert_id=row.alert_id,
            triggered_value=row.triggered_value,
            triggered_at=row.triggered_at,
            email_sent=row.email_sent,
            email_sent_at=row.email_sent_at,
            error_message=row.error_message,
            email=row.email,
            conditions=row.conditions or [],
            kpi_name=row.kpi_name,
            kpi_description=row.kpi_description,
            device_name=row.device_name,
            device_location=row.device_location,
        )
        for row in rows
    ]


@router.post("/check", response_model=AlertCheckResponse)
async def check_alerts(body: AlertCheckRequest, db: AsyncSession = Depends(get_db)):
    """Run the alert scan for a value without completing a task."""
    try:
        results = await scan_alerts(db, body.kpi_id, body.todolist_id, body.value)
    except Exception as exc:
        logger.exception("alert.manual_check_failed", kpi_id=str(body.kpi_id))
        raise HTTPException(status_code=500, detail=f"Alert check failed: {exc}") from exc

    return AlertCheckResponse(
        kpi_id=body.kpi_id,
        todolist_id=body.todolist_id,
        results=[
            AlertCheckOutcome(
                alert_id=r.alert_id,
                state=r.state.value,
                triggered_value=r.triggered_value,
                log_id=r.log_id,
                error=r.error,
            )
            for r in results
        ],
    )


@router.patch("/{alert_id}/active", response_model=KpiAlertResponse)
async def set_alert_active(alert_id: UUID, body: ActiveToggle, db: AsyncSession = Depends(get_db)):
    """Enable or disable an alert."""
    try:
        alert = await repository.toggle_alert_active(db, alert_id, body.is_active)
    except AlertNotFoundError:
        raise HTTPException(status_code=404, detail="Alert not found")
    logger.info("alert.toggled", alert_id=str(alert_id), is_active=body.is_active)
    return alert


@router.delete("/{alert_id}", status_code=204)
async def delete_alert(alert_id: UUID, db: AsyncSession = Depends(get_db)):
    """Delete an alert and its trigger history."""
    try:
        await repository.delete_alert(db, alert_id)
    except AlertNotFoundError:
        raise HTTPException(status_code=404, detail="Alert not found")
    logger.info("alert.deleted", alert_id=str(alert_id))
    return Response(status_code=204)
