"""
Celery tasks for notification hand-off and cascade reconciliation.
"""
import logging
from celery import shared_task
import httpx
from django.utils import timezone

from cancellations.models import ApplicationStatus, CancellationApplication
from cancellations.services.errors import CascadeIncomplete
from cancellations.services.messaging_client import send_notification
from cancellations.services.notifications import audience_for, render
from cancellations.services.workflow import apply_cancellation_cascade

logger = logging.getLogger(__name__)


class MessagingServerError(Exception):
    """The messaging API answered with a 5xx status."""


@shared_task(
    bind=True,
    autoretry_for=(httpx.TimeoutException, httpx.ConnectError, MessagingServerError),
    retry_backoff=30,  # Exponential backoff starting at 30s
    retry_backoff_max=480,  # Max backoff of 480s (8 minutes)
    max_retries=5,
    retry_jitter=False
)
def dispatch_notification(self, event_type: str, payload: dict):
    """
    Render a workflow event and hand it to the messaging API.

    Args:
        event_type: Notification event type
        payload: Event details produced by submission or a decision

    Returns:
        Messaging API status code, None when the message was not sent
    """
    application_id = payload.get('application_id')
    try:
        rendered = render(event_type, payload, tz=timezone.get_default_timezone())
    except ValueError as e:
        # Rendering is deterministic, retrying cannot help
        logger.error(f"Notification for application {application_id} not rendered: {e}")
        return None

    message = {
        'event_type': str(event_type),
        'audience': audience_for(event_type),
        'merchant_id': payload.get('merchant_id'),
        'application_id': application_id,
        **rendered.to_dict(),
    }

    response = send_notification(message)
    if response is None:
        return None

    if 200 <= response.status_code < 300:
        logger.info(f"Notification {event_type} for application {application_id} delivered")
    elif 400 <= response.status_code < 500:
        # 4xx: Client error, no retry
        logger.error(
            f"Notification {event_type} for application {application_id} refused: "
            f"client error {response.status_code}, no retry"
        )
    else:
        logger.warning(
            f"Notification {event_type} for application {application_id}: "
            f"server error {response.status_code}, "
            f"will retry (attempt {self.request.retries + 1}/{self.max_retries + 1})"
        )
        raise MessagingServerError(f"Server error: {response.status_code}")

    return response.status_code


@shared_task
def reconcile_cancellation_cascades():
    """
    Re-apply the cascade of approved cancellations whose lead update never landed.

    Returns:
        Number of applications reconciled
    """
    pending = CancellationApplication.objects.filter(
        status=ApplicationStatus.APPROVED,
        lead_status_updated=False,
    ).order_by('decided_at')

    reconciled = 0
    for application in pending:
        try:
            apply_cancellation_cascade(application)
        except CascadeIncomplete as e:
            logger.error(f"Reconciliation of application {application.id} failed: {e}")
            continue
        reconciled += 1

    logger.info(f"Reconciled {reconciled} cancellation cascades")
    return reconciled
