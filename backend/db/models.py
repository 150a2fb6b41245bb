"""
Checkpoint Database Models

Tables:
  1. devices         - Control points (machines, rooms, fridges) that get checked
  2. kpis            - Measurement definitions recorded by tasks
  3. todolist        - One checklist per device and time slot
  4. tasks           - One KPI measurement inside a todolist
  5. kpi_alerts      - Standing alert rules (KPI + todolist + conditions)
  6. kpi_alert_logs  - Audit trail of alert triggers and email delivery
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    TypeDecorator,
    types,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL UUID when available, stores as CHAR(36) on SQLite.
    """

    impl = types.String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(types.String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if dialect.name == "postgresql":
            return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        return str(value) if isinstance(value, uuid.UUID) else str(uuid.UUID(str(value)))

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))


from sqlalchemy.orm import relationship

from db.session import Base

# ─── 1. Devices ─────────────────────────────────────────────────────────────


class Device(Base):
    __tablename__ = "devices"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    location = Column(String(255))
    description = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    todolists = relationship("Todolist", back_populates="device")


# ─── 2. KPIs ────────────────────────────────────────────────────────────────


class Kpi(Base):
    __tablename__ = "kpis"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    # Field definitions for multi-field KPIs: [{"id": ..., "name": ..., "type": ...}]
    value = Column(JSON)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


# ─── 3. Todolists ───────────────────────────────────────────────────────────


class Todolist(Base):
    __tablename__ = "todolist"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    device_id = Column(GUID(), ForeignKey("devices.id", ondelete="CASCADE"), nullable=False)
    scheduled_execution = Column(DateTime(timezone=True), nullable=False)
    time_slot_type = Column(String(20), nullable=False, default="standard")
    status = Column(String(20), nullable=False, default="pending")
    completion_date = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_todolist_device_schedule", "device_id", "scheduled_execution"),
        CheckConstraint("time_slot_type IN ('standard', 'custom')", name="ck_todolist_time_slot_type"),
        CheckConstraint("status IN ('pending', 'in_progress', 'completed')", name="ck_todolist_status"),
    )

    device = relationship("Device", back_populates="todolists")
    tasks = relationship("Task", back_populates="todolist", cascade="all, delete-orphan")


# ─── 4. Tasks ───────────────────────────────────────────────────────────────


class Task(Base):
    __tablename__ = "tasks"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    todolist_id = Column(GUID(), ForeignKey("todolist.id", ondelete="CASCADE"), nullable=False)
    kpi_id = Column(GUID(), ForeignKey("kpis.id"), nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    value = Column(JSON)
    alert_checked = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_tasks_todolist", "todolist_id"),
        CheckConstraint("status IN ('pending', 'completed')", name="ck_task_status"),
    )

    todolist = relationship("Todolist", back_populates="tasks")


# ─── 5. KPI Alerts ──────────────────────────────────────────────────────────


class KpiAlert(Base):
    __tablename__ = "kpi_alerts"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    kpi_id = Column(GUID(), ForeignKey("kpis.id", ondelete="CASCADE"), nullable=False)
    todolist_id = Column(GUID(), ForeignKey("todolist.id", ondelete="CASCADE"), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    email = Column(String(320), nullable=False)
    # Ordered list of condition dicts; order is evaluation order.
    conditions = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (Index("ix_kpi_alerts_kpi_active", "kpi_id", "is_active"),)

    logs = relationship("KpiAlertLog", back_populates="alert", passive_deletes=True)


# ─── 6. KPI Alert Logs ──────────────────────────────────────────────────────


class KpiAlertLog(Base):
    __tablename__ = "kpi_alert_logs"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    alert_id = Column(GUID(), ForeignKey("kpi_alerts.id", ondelete="CASCADE"), nullable=False)
    triggered_value = Column(JSON)
    triggered_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    email_sent = Column(Boolean, nullable=False, default=False)
    email_sent_at = Column(DateTime(timezone=True))
    error_message = Column(Text)

    __table_args__ = (Index("ix_kpi_alert_logs_alert_triggered", "alert_id", "triggered_at"),)

    alert = relationship("KpiAlert", back_populates="logs")
