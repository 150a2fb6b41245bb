"""
Tasks Router — Recording values and completing checklist tasks.
"""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_db
from todolists.tasks import TaskNotFoundError, update_task_status, update_task_value

router = APIRouter(prefix="/api/v1/tasks", tags=["tasks"])


class TaskResponse(BaseModel):
    id: UUID
    todolist_id: UUID
    kpi_id: UUID
    status: str
    value: Any
    alert_checked: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class TaskStatusUpdate(BaseModel):
    status: Literal["pending", "completed"]


class TaskValueUpdate(BaseModel):
    value: Any


@router.patch("/{task_id}/status", response_model=TaskResponse)
async def set_task_status(task_id: UUID, body: TaskStatusUpdate, db: AsyncSession = Depends(get_db)):
    """Update a task's status. Completing a task checks its KPI alerts."""
    try:
        return await update_task_status(db, task_id, body.status)
    except TaskNotFoundError:
        raise HTTPException(status_code=404, detail="Task not found")


@router.patch("/{task_id}/value", response_model=TaskResponse)
async def set_task_value(task_id: UUID, body: TaskValueUpdate, db: AsyncSession = Depends(get_db)):
    """Record the measured value of a task."""
    try:
        return await update_task_value(db, task_id, body.value)
    except TaskNotFoundError:
        raise HTTPException(status_code=404, detail="Task not found")
