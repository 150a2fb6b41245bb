"""
Alert engine exceptions.

Extraction misses and failed coercions are not errors; they simply never
trigger. Everything here can propagate up to the task-completion hook,
which is the only place that swallows them.
"""

from uuid import UUID


class AlertError(Exception):
    """Base class for alert subsystem failures."""


class AlertNotFoundError(AlertError, LookupError):
    def __init__(self, alert_id: UUID | str):
        super().__init__(f"Alert {alert_id} not found")
        self.alert_id = alert_id


class MetadataLookupError(AlertError, LookupError):
    """KPI or device display data needed for the notification is missing."""

    def __init__(self, entity: str, entity_id: UUID | str):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class AlertDeliveryError(AlertError):
    """The notification email could not be delivered."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
