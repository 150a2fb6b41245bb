"""
Trigger Recorder — Audit log + notification for a fired alert.

Sequence:
  1. Look up KPI and device display data (missing rows raise)
  2. Insert a kpi_alert_logs row with email_sent=false
  3. Email the alert address
  4. Mark the row sent, or store the delivery error and re-raise
"""

from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from alerts import repository
from alerts.email import AlertEmailData, send_alert_email
from alerts.repository import WatchedAlert
from db.models import utcnow

logger = structlog.get_logger()

UNKNOWN_DELIVERY_ERROR = "Unknown error"


async def _update_log_best_effort(db: AsyncSession, log_id: UUID, **changes: Any) -> None:
    """A failed log update is logged, never raised; it must not hide the trigger outcome."""
    try:
        await repository.update_log(db, log_id, **changes)
    except Exception:
        logger.exception("alert.log_update_failed", log_id=str(log_id))
        await db.rollback()


async def record_trigger(db: AsyncSession, alert: WatchedAlert, triggered_value: Any) -> UUID:
    """Persist a trigger log for ``alert``, deliver its notification, return the log id."""
    stream = await repository.get_stream_info(db, alert.kpi_id)
    device_id = await repository.get_context_device(db, alert.todolist_id)
    device = await repository.get_device(db, device_id)

    log = await repository.insert_log(db, alert.id, triggered_value)
    log_id = log.id
    logger.info(
        "alert.triggered",
        alert_id=str(alert.id),
        log_id=str(log_id),
        kpi_id=str(alert.kpi_id),
        todolist_id=str(alert.todolist_id),
        triggered_value=triggered_value,
    )

    email_data = AlertEmailData(
        stream_name=stream.name,
        stream_description=stream.description,
        device_name=device.name,
        device_location=device.location,
        triggered_value=triggered_value,
        conditions=list(alert.conditions),
    )

    try:
        await send_alert_email(alert.email, email_data)
    except Exception as exc:
        logger.warning("alert.email_failed", alert_id=str(alert.id), log_id=str(log_id), error=str(exc))
        await _update_log_best_effort(db, log_id, error_message=str(exc) or UNKNOWN_DELIVERY_ERROR)
        raise

    await _update_log_best_effort(db, log_id, email_sent=True, email_sent_at=utcnow())
    logger.info("alert.email_sent", alert_id=str(alert.id), log_id=str(log_id), to=alert.email)
    return log_id
