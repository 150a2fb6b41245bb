"""
Alert Engine — KPI alert scanning on task completion.

Flow for one completed task:
  1. Load active alerts watching the task's KPI
  2. Skip alerts scoped to a different todolist
  3. Walk each alert's conditions in stored order; the first one that
     fires stops the walk (at most one trigger per alert per check)
  4. Hand the trigger to the recorder (log row + email)

Each alert is processed inside its own error boundary so a failing
notification for one alert does not stop its siblings. The task-completion
hook wraps the whole scan in a final boundary: alerting is best-effort,
task completion is authoritative.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from alerts import recorder, repository
from alerts.conditions import evaluate
from alerts.repository import WatchedAlert
from alerts.values import ABSENT, extract

logger = structlog.get_logger()


class AlertScanState(str, Enum):
    """Lifecycle of one alert during a scan."""

    PENDING = "pending"
    SKIPPED = "skipped"  # scoped to another todolist
    EVALUATING = "evaluating"
    TRIGGERED = "triggered"
    EXHAUSTED = "exhausted"  # no condition fired
    FAILED = "failed"  # evaluation or recording raised


@dataclass
class AlertScanResult:
    alert_id: UUID
    state: AlertScanState = AlertScanState.PENDING
    condition_index: int | None = None
    triggered_value: Any = None
    log_id: UUID | None = None
    error: str | None = None


# ──────────────────────────────────────────────────────────────────────────
# Condition walk
# ──────────────────────────────────────────────────────────────────────────


def find_trigger(alert: WatchedAlert, value: Any) -> tuple[int, Any] | None:
    """
    Return ``(condition_index, normalized_value)`` of the first firing
    condition, or None when every condition is absent or passes.
    """
    for index, condition in enumerate(alert.conditions):
        extracted = extract(value, condition.field_id)
        if extracted is ABSENT:
            continue
        result = evaluate(extracted, condition)
        if result.triggered:
            return index, result.normalized_value
    return None


async def _process_alert(db: AsyncSession, alert: WatchedAlert, value: Any, scan: AlertScanResult) -> None:
    scan.state = AlertScanState.EVALUATING
    trigger = find_trigger(alert, value)
    if trigger is None:
        scan.state = AlertScanState.EXHAUSTED
        return

    scan.state = AlertScanState.TRIGGERED
    scan.condition_index, scan.triggered_value = trigger
    scan.log_id = await recorder.record_trigger(db, alert, scan.triggered_value)


# ──────────────────────────────────────────────────────────────────────────
# Scanner
# ──────────────────────────────────────────────────────────────────────────


async def scan_alerts(
    db: AsyncSession,
    kpi_id: UUID,
    todolist_id: UUID,
    value: Any,
) -> list[AlertScanResult]:
    """
    Check ``value`` against every active alert for ``kpi_id`` scoped to
    ``todolist_id``. Failing to load alerts raises; failures inside a single
    alert are logged and reported on its result.
    """
    alerts = await repository.load_active_alerts_for_kpi(db, kpi_id)
    logger.info("alert.scan_started", kpi_id=str(kpi_id), todolist_id=str(todolist_id), candidates=len(alerts))

    # Snapshot before any per-alert rollback expires the ORM rows
    results: list[AlertScanResult] = []
    watched: list[tuple[WatchedAlert | None, AlertScanResult]] = []
    for alert in alerts:
        scan = AlertScanResult(alert_id=alert.id)
        results.append(scan)
        if alert.todolist_id != todolist_id:
            scan.state = AlertScanState.SKIPPED
            continue
        try:
            watched.append((WatchedAlert.from_model(alert), scan))
        except Exception as exc:
            scan.state = AlertScanState.FAILED
            scan.error = str(exc)
            logger.exception("alert.conditions_invalid", alert_id=str(scan.alert_id))

    for alert, scan in watched:
        try:
            await _process_alert(db, alert, value, scan)
        except Exception as exc:
            scan.state = AlertScanState.FAILED
            scan.error = str(exc) or exc.__class__.__name__
            logger.exception("alert.check_failed", alert_id=str(alert.id), kpi_id=str(kpi_id))
            await db.rollback()

    logger.info(
        "alert.scan_completed",
        kpi_id=str(kpi_id),
        todolist_id=str(todolist_id),
        triggered=sum(1 for r in results if r.state == AlertScanState.TRIGGERED),
        failed=sum(1 for r in results if r.state == AlertScanState.FAILED),
    )
    return results


# ──────────────────────────────────────────────────────────────────────────
# Task-completion hook
# ──────────────────────────────────────────────────────────────────────────


async def check_alerts_for_measurement(
    db: AsyncSession,
    kpi_id: UUID,
    todolist_id: UUID,
    value: Any,
) -> None:
    """Run the alert scan for a completed task. Never raises."""
    try:
        await scan_alerts(db, kpi_id, todolist_id, value)
    except Exception:
        logger.exception("alert.check_errored", kpi_id=str(kpi_id), todolist_id=str(todolist_id))
        try:
            await db.rollback()
        except Exception:
            logger.exception("alert.rollback_failed", kpi_id=str(kpi_id))
