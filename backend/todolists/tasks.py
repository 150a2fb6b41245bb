"""
Todolist Tasks — Status and value updates for checklist tasks.

Completing a task is the one place KPI alerts get checked. The check runs
after the new status is committed, once per task (``alert_checked``), and
can never make the completion itself fail.
"""

from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from alerts.engine import check_alerts_for_measurement
from db.models import Task

logger = structlog.get_logger()

TASK_STATUSES = ("pending", "completed")


class TaskNotFoundError(LookupError):
    def __init__(self, task_id: UUID):
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


def has_value(value: Any) -> bool:
    """Whether a task carries a measurement worth checking."""
    if value is None:
        return False
    if isinstance(value, (str, list, dict)) and not value:
        return False
    return True


async def _get_task(db: AsyncSession, task_id: UUID) -> Task:
    task = await db.get(Task, task_id)
    if task is None:
        raise TaskNotFoundError(task_id)
    return task


async def update_task_status(db: AsyncSession, task_id: UUID, status: str) -> Task:
    """Set a task's status; on first completion, check its KPI alerts."""
    if status not in TASK_STATUSES:
        raise ValueError(f"Invalid task status '{status}'. Must be one of {TASK_STATUSES}")

    task = await _get_task(db, task_id)
    completing = status == "completed"
    should_check = completing and not task.alert_checked and has_value(task.value)

    task.status = status
    if completing:
        task.alert_checked = True
    await db.commit()
    await db.refresh(task)
    # Detach so a rollback inside the alert check cannot expire the result
    db.expunge(task)

    logger.info(
        "task.status_updated",
        task_id=str(task.id),
        status=status,
        alert_check=should_check,
    )

    if should_check:
        await check_alerts_for_measurement(db, task.kpi_id, task.todolist_id, task.value)

    return task


async def update_task_value(db: AsyncSession, task_id: UUID, value: Any) -> Task:
    """Store the recorded measurement. Alerts are only checked on completion."""
    task = await _get_task(db, task_id)
    task.value = value
    await db.commit()
    await db.refresh(task)
    return task
