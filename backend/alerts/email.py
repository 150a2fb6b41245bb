"""
Email Delivery for KPI alerts.

Renders the alert notification and sends it through SendGrid. Failures
raise AlertDeliveryError so the trigger recorder can store the reason on
the trigger log.
"""

import asyncio
import html
import json
from dataclasses import dataclass, field
from typing import Any

import sendgrid
import structlog
from sendgrid.helpers.mail import Mail

from alerts.conditions import AlertCondition
from alerts.errors import AlertDeliveryError
from core.config import get_settings

logger = structlog.get_logger()


@dataclass
class AlertEmailData:
    stream_name: str
    device_name: str
    triggered_value: Any
    stream_description: str | None = None
    device_location: str | None = None
    conditions: list[AlertCondition] = field(default_factory=list)


def format_triggered_value(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, indent=2, ensure_ascii=False)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_subject(data: AlertEmailData) -> str:
    prefix = get_settings().alert_email_subject_prefix
    return f"{prefix} {data.stream_name} - {data.device_name}"


def render_alert_email(data: AlertEmailData) -> str:
    """HTML body for an alert notification."""
    esc = html.escape
    conditions_html = "".join(
        f'<li style="margin: 4px 0;">{esc(condition.describe())}</li>' for condition in data.conditions
    )
    description = (
        f'<p style="color: #334155;"><strong>Description:</strong> {esc(data.stream_description)}</p>'
        if data.stream_description
        else ""
    )
    location = (
        f'<p style="color: #334155;"><strong>Location:</strong> {esc(data.device_location)}</p>'
        if data.device_location
        else ""
    )

    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <h2 style="color: #dc2626;">Alert triggered</h2>
      <div style="background: #fef2f2; border: 1px solid #fecaca; border-radius: 8px; padding: 20px; margin: 20px 0;">
        <h3 style="margin-top: 0; color: #dc2626;">Check details</h3>
        <p style="color: #334155;"><strong>Check:</strong> {esc(data.stream_name)}</p>
        {description}
        <p style="color: #334155;"><strong>Control point:</strong> {esc(data.device_name)}</p>
        {location}
      </div>
      <div style="background: #f8fafc; border: 1px solid #e2e8f0; border-radius: 8px; padding: 20px; margin: 20px 0;">
        <h3 style="margin-top: 0;">Detected value</h3>
        <pre style="white-space: pre-wrap; background: #fff; padding: 8px; border-radius: 4px;">{esc(format_triggered_value(data.triggered_value))}</pre>
      </div>
      <div style="background: #f0f9ff; border: 1px solid #bae6fd; border-radius: 8px; padding: 20px; margin: 20px 0;">
        <h3 style="margin-top: 0; color: #0369a1;">Alert conditions</h3>
        <ul style="padding-left: 18px;">{conditions_html}</ul>
      </div>
      <p style="color: #6b7280; font-size: 14px;">
        This message was generated automatically by the monitoring system. Do not reply.
      </p>
    </div>
    """


async def send_alert_email(to_email: str, data: AlertEmailData) -> None:
    """
    Send an alert notification via SendGrid.

    Raises AlertDeliveryError when SendGrid is not configured, the request
    fails, or the response is not a 2xx.
    """
    settings = get_settings()
    if not settings.sendgrid_api_key:
        raise AlertDeliveryError("SendGrid API key is not configured")

    message = Mail(
        from_email=settings.alert_from_email,
        to_emails=to_email,
        subject=build_subject(data),
        html_content=render_alert_email(data),
    )
    sg = sendgrid.SendGridAPIClient(api_key=settings.sendgrid_api_key)
    try:
        response = await asyncio.to_thread(sg.send, message)
    except Exception as exc:
        raise AlertDeliveryError(f"SendGrid request failed: {exc}") from exc

    if response.status_code not in (200, 201, 202):
        raise AlertDeliveryError(
            f"SendGrid rejected the message with status {response.status_code}",
            status_code=response.status_code,
        )
    logger.info("alert.email_delivered", to=to_email, status_code=response.status_code)
