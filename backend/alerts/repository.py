"""
Alert persistence — KPI alerts, trigger logs, and notification metadata.

Thin async SQLAlchemy helpers shared by the engine and the API routers.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import Row, delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from alerts.conditions import AlertCondition, parse_conditions
from alerts.errors import AlertNotFoundError, MetadataLookupError
from db.models import Device, Kpi, KpiAlert, KpiAlertLog, Todolist

# ──────────────────────────────────────────────────────────────────────────
# Alerts
# ──────────────────────────────────────────────────────────────────────────


async def load_active_alerts_for_kpi(db: AsyncSession, kpi_id: UUID) -> list[KpiAlert]:
    """Active alerts watching ``kpi_id``, oldest first."""
    result = await db.execute(
        select(KpiAlert)
        .where(KpiAlert.kpi_id == kpi_id, KpiAlert.is_active.is_(True))
        .order_by(KpiAlert.created_at)
    )
    return list(result.scalars().all())


async def get_alert(db: AsyncSession, alert_id: UUID) -> KpiAlert:
    alert = await db.get(KpiAlert, alert_id)
    if alert is None:
        raise AlertNotFoundError(alert_id)
    return alert


async def list_alerts(
    db: AsyncSession,
    kpi_id: UUID | None = None,
    todolist_id: UUID | None = None,
) -> list[KpiAlert]:
    query = select(KpiAlert)
    if kpi_id:
        query = query.where(KpiAlert.kpi_id == kpi_id)
    if todolist_id:
        query = query.where(KpiAlert.todolist_id == todolist_id)
    result = await db.execute(query.order_by(KpiAlert.created_at))
    return list(result.scalars().all())


async def insert_alert(
    db: AsyncSession,
    kpi_id: UUID,
    todolist_id: UUID,
    email: str,
    conditions: list[dict[str, Any]],
    is_active: bool = True,
) -> KpiAlert:
    alert = KpiAlert(
        kpi_id=kpi_id,
        todolist_id=todolist_id,
        email=email,
        conditions=conditions,
        is_active=is_active,
    )
    db.add(alert)
    await db.commit()
    await db.refresh(alert)
    return alert


async def toggle_alert_active(db: AsyncSession, alert_id: UUID, is_active: bool) -> KpiAlert:
    alert = await get_alert(db, alert_id)
    alert.is_active = is_active
    await db.commit()
    await db.refresh(alert)
    return alert


async def delete_alert(db: AsyncSession, alert_id: UUID) -> None:
    """Delete an alert together with its trigger history."""
    await get_alert(db, alert_id)
    await db.execute(delete(KpiAlertLog).where(KpiAlertLog.alert_id == alert_id))
    await db.execute(delete(KpiAlert).where(KpiAlert.id == alert_id))
    await db.commit()


# ──────────────────────────────────────────────────────────────────────────
# Trigger logs
# ──────────────────────────────────────────────────────────────────────────


async def insert_log(
    db: AsyncSession,
    alert_id: UUID,
    triggered_value: Any,
) -> KpiAlertLog:
    log = KpiAlertLog(
        alert_id=alert_id,
        triggered_value=triggered_value,
        email_sent=False,
    )
    db.add(log)
    await db.commit()
    await db.refresh(log)
    return log


async def update_log(db: AsyncSession, log_id: UUID, **changes: Any) -> None:
    """Apply ``email_sent`` / ``email_sent_at`` / ``error_message`` changes."""
    allowed = {"email_sent", "email_sent_at", "error_message"}
    unknown = set(changes) - allowed
    if unknown:
        raise ValueError(f"Cannot update trigger log fields: {sorted(unknown)}")

    log = await db.get(KpiAlertLog, log_id)
    if log is None:
        raise LookupError(f"Trigger log {log_id} not found")
    for field, value in changes.items():
        setattr(log, field, value)
    await db.commit()


async def query_logs(
    db: AsyncSession,
    alert_id: UUID | None = None,
    kpi_id: UUID | None = None,
    todolist_id: UUID | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    limit: int | None = None,
) -> list[Row]:
    """
    Trigger logs matching the filters, newest first.

    Each row carries the log columns plus the owning alert's email and
    conditions, the KPI's name/description and the device's name/location.
    KPI and device columns are None when those rows no longer exist.
    """
    query = (
        select(
            KpiAlertLog.id,
            KpiAlertLog.alert_id,
            KpiAlertLog.triggered_value,
            KpiAlertLog.triggered_at,
            KpiAlertLog.email_sent,
            KpiAlertLog.email_sent_at,
            KpiAlertLog.error_message,
            KpiAlert.email,
            KpiAlert.conditions,
            Kpi.name.label("kpi_name"),
            Kpi.description.label("kpi_description"),
            Device.name.label("device_name"),
            Device.location.label("device_location"),
        )
        .join(KpiAlert, KpiAlertLog.alert_id == KpiAlert.id)
        .outerjoin(Kpi, Kpi.id == KpiAlert.kpi_id)
        .outerjoin(Todolist, Todolist.id == KpiAlert.todolist_id)
        .outerjoin(Device, Device.id == Todolist.device_id)
    )
    if alert_id:
        query = query.where(KpiAlertLog.alert_id == alert_id)
    if kpi_id:
        query = query.where(KpiAlert.kpi_id == kpi_id)
    if todolist_id:
        query = query.where(KpiAlert.todolist_id == todolist_id)
    if start_date:
        query = query.where(KpiAlertLog.triggered_at >= start_date)
    if end_date:
        query = query.where(KpiAlertLog.triggered_at <= end_date)
    query = query.order_by(KpiAlertLog.triggered_at.desc())
    if limit:
        query = query.limit(limit)
    result = await db.execute(query)
    return list(result.all())


# ──────────────────────────────────────────────────────────────────────────
# Engine views + notification metadata
# ──────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class WatchedAlert:
    """Detached view of a kpi_alerts row, safe to use across session rollbacks."""

    id: UUID
    kpi_id: UUID
    todolist_id: UUID
    email: str
    conditions: tuple[AlertCondition, ...]

    @classmethod
    def from_model(cls, alert: KpiAlert) -> "WatchedAlert":
        return cls(
            id=alert.id,
            kpi_id=alert.kpi_id,
            todolist_id=alert.todolist_id,
            email=alert.email,
            conditions=tuple(parse_conditions(alert.conditions)),
        )


@dataclass(frozen=True)
class StreamInfo:
    name: str
    description: str | None


@dataclass(frozen=True)
class DeviceInfo:
    name: str
    location: str | None


async def get_stream_info(db: AsyncSession, kpi_id: UUID) -> StreamInfo:
    result = await db.execute(select(Kpi.name, Kpi.description).where(Kpi.id == kpi_id))
    row = result.one_or_none()
    if row is None:
        raise MetadataLookupError("KPI", kpi_id)
    return StreamInfo(name=row.name, description=row.description)


async def get_context_device(db: AsyncSession, todolist_id: UUID) -> UUID:
    """Device that owns the todolist an alert is scoped to."""
    result = await db.execute(select(Todolist.device_id).where(Todolist.id == todolist_id))
    device_id = result.scalar_one_or_none()
    if device_id is None:
        raise MetadataLookupError("Todolist", todolist_id)
    return device_id


async def get_device(db: AsyncSession, device_id: UUID) -> DeviceInfo:
    result = await db.execute(select(Device.name, Device.location).where(Device.id == device_id))
    row = result.one_or_none()
    if row is None:
        raise MetadataLookupError("Device", device_id)
    return DeviceInfo(name=row.name, location=row.location)
