"""
Rendering and queueing of workflow notifications.

Rendering is pure: the same event and payload always produce the same
message. Delivery is the messaging client's job, run from a Celery task.
Submission events go to administrators for review, decision events go to
the merchant.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Optional

from django.db import models
from django.utils import timezone

logger = logging.getLogger(__name__)

DEADLINE_FORMAT = '%Y-%m-%d %H:%M'

ADMIN = 'admin'
MERCHANT = 'merchant'


class EventType(models.TextChoices):
    CANCELLATION_SUBMITTED = 'cancellation_submitted', 'Cancellation submitted'
    EXTENSION_SUBMITTED = 'extension_submitted', 'Extension submitted'
    CANCELLATION_APPROVED = 'cancellation_approved', 'Cancellation approved'
    CANCELLATION_REJECTED = 'cancellation_rejected', 'Cancellation rejected'
    EXTENSION_APPROVED = 'extension_approved', 'Extension approved'
    EXTENSION_REJECTED = 'extension_rejected', 'Extension rejected'


_ADMIN_EVENTS = (EventType.CANCELLATION_SUBMITTED, EventType.EXTENSION_SUBMITTED)


def audience_for(event_type: str) -> str:
    """Who a notification is addressed to: administrators or the merchant."""
    return ADMIN if event_type in _ADMIN_EVENTS else MERCHANT


@dataclass(frozen=True)
class RenderedNotification:
    subject: str
    long_body: str
    short_body: str

    def to_dict(self) -> dict:
        return {
            'subject': self.subject,
            'long_body': self.long_body,
            'short_body': self.short_body,
        }


def isoformat_local(value: Optional[datetime]) -> Optional[str]:
    """ISO string of a timestamp in the local zone, for task payloads."""
    if value is None:
        return None
    if timezone.is_aware(value):
        value = timezone.localtime(value)
    return value.isoformat()


def format_deadline(value, tz: Optional[tzinfo] = None) -> str:
    """Format a datetime (or its ISO string) as ``YYYY-MM-DD HH:MM``."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if tz is not None and value.tzinfo is not None:
        value = value.astimezone(tz)
    return value.strftime(DEADLINE_FORMAT)


def _case_line(payload: dict) -> str:
    customer = payload.get('customer_name') or ''
    lead_id = payload.get('lead_id', '')
    return f"{customer} (case {lead_id})" if customer else f"case {lead_id}"


def _merchant_line(payload: dict) -> str:
    return payload.get('merchant_name') or payload.get('merchant_id', '')


def _cancellation_submitted(payload, tz):
    case = _case_line(payload)
    merchant = _merchant_line(payload)
    consistency = payload.get('consistency') or {}
    engaged = consistency.get('classification') == 'warning'

    lines = [f"New cancellation request {payload.get('application_id', '')} for {case} from {merchant}."]
    if payload.get('applicant_name'):
        lines.append(f"Applicant: {payload['applicant_name']}")
    lines.append(
        f"Follow-up: {payload.get('phone_call_count', 0)} phone calls, "
        f"{payload.get('sms_count', 0)} SMS"
    )
    if payload.get('applicable_deadline'):
        lines.append(f"Deadline: {format_deadline(payload['applicable_deadline'], tz)}")
    if engaged:
        lines.append(f"Warning: {consistency.get('message', '')}")
    if payload.get('application_text'):
        lines.extend(['', payload['application_text']])

    short_body = f"Cancellation request for {case} from {merchant}."
    if engaged:
        short_body += " Other merchants are still engaged."
    return RenderedNotification(
        subject=f"Cancellation request: {payload.get('lead_id', '')}",
        long_body="\n".join(lines),
        short_body=short_body,
    )


def _extension_submitted(payload, tz):
    case = _case_line(payload)
    merchant = _merchant_line(payload)

    lines = [f"New deadline extension request {payload.get('application_id', '')} for {case} from {merchant}."]
    if payload.get('applicant_name'):
        lines.append(f"Applicant: {payload['applicant_name']}")
    if payload.get('contact_date'):
        lines.append(f"Contact date: {format_deadline(payload['contact_date'], tz)}")
    if payload.get('appointment_date'):
        lines.append(f"Appointment date: {format_deadline(payload['appointment_date'], tz)}")
    if payload.get('extended_deadline'):
        lines.append(f"Deadline if approved: {format_deadline(payload['extended_deadline'], tz)}")
    lines.append(f"Reason: {payload.get('reason', '')}")

    return RenderedNotification(
        subject=f"Deadline extension request: {payload.get('lead_id', '')}",
        long_body="\n".join(lines),
        short_body=f"Extension request for {case} from {merchant}.",
    )


def _cancellation_approved(payload, tz):
    case = _case_line(payload)
    return RenderedNotification(
        subject=f"Cancellation approved: {payload.get('lead_id', '')}",
        long_body=(
            f"Your cancellation request {payload.get('application_id', '')} for {case} "
            f"has been approved.\n"
            f"No fee will be charged for this case."
        ),
        short_body=f"Cancellation approved for {case}.",
    )


def _cancellation_rejected(payload, tz):
    case = _case_line(payload)
    reason = payload.get('reject_reason', '')
    return RenderedNotification(
        subject=f"Cancellation rejected: {payload.get('lead_id', '')}",
        long_body=(
            f"Your cancellation request {payload.get('application_id', '')} for {case} "
            f"has been rejected.\n"
            f"Reason: {reason}\n"
            f"Please continue following up with the customer."
        ),
        short_body=f"Cancellation rejected for {case}. Reason: {reason}",
    )


def _extension_approved(payload, tz):
    case = _case_line(payload)
    deadline = format_deadline(payload['extended_deadline'], tz)
    return RenderedNotification(
        subject=f"Deadline extension approved: {payload.get('lead_id', '')}",
        long_body=(
            f"Your deadline extension request {payload.get('application_id', '')} for {case} "
            f"has been approved.\n"
            f"New cancellation deadline: {deadline}"
        ),
        short_body=f"Extension approved for {case}. New deadline: {deadline}",
    )


def _extension_rejected(payload, tz):
    case = _case_line(payload)
    reason = payload.get('reject_reason', '')
    return RenderedNotification(
        subject=f"Deadline extension rejected: {payload.get('lead_id', '')}",
        long_body=(
            f"Your deadline extension request {payload.get('application_id', '')} for {case} "
            f"has been rejected.\n"
            f"Reason: {reason}\n"
            f"The standard cancellation deadline still applies."
        ),
        short_body=f"Extension rejected for {case}. Reason: {reason}",
    )


_RENDERERS = {
    EventType.CANCELLATION_SUBMITTED: _cancellation_submitted,
    EventType.EXTENSION_SUBMITTED: _extension_submitted,
    EventType.CANCELLATION_APPROVED: _cancellation_approved,
    EventType.CANCELLATION_REJECTED: _cancellation_rejected,
    EventType.EXTENSION_APPROVED: _extension_approved,
    EventType.EXTENSION_REJECTED: _extension_rejected,
}


def render(event_type: str, payload: dict, tz: Optional[tzinfo] = None) -> RenderedNotification:
    """
    Render a workflow event into subject, long body and short body.

    Args:
        event_type: One of EventType
        payload: Event details (application_id, lead_id, customer_name,
            reject_reason, extended_deadline, ...)
        tz: Zone deadlines are shown in, aware values only

    Raises:
        ValueError: Unknown event type
    """
    try:
        renderer = _RENDERERS[EventType(event_type)]
    except ValueError:
        raise ValueError(f"Unknown notification event type: {event_type}")
    return renderer(payload, tz)


def queue_notification(event_type: str, payload: dict) -> bool:
    """
    Queue a notification for delivery.

    Failure to enqueue is logged and never propagates: the write that
    triggered the notification is already committed.

    Returns:
        True when the task was queued
    """
    from cancellations.tasks import dispatch_notification

    try:
        dispatch_notification.delay(event_type, payload)
    except Exception as e:
        logger.error(
            f"Failed to queue {event_type} notification for application "
            f"{payload.get('application_id')}: {e}",
            exc_info=True
        )
        return False
    logger.info(f"Queued {event_type} notification for application {payload.get('application_id')}")
    return True
