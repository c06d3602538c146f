"""
Administrator decisions on cancellation and extension applications.

Every decision is a compare-and-set on ``status = pending``: when two
administrators decide the same application concurrently, exactly one update
matches and the other caller gets AlreadyDecided.

Approving a cancellation also applies the cascade (delivery record ->
cancellation_approved, lead -> delivered_no_contract). The cascade is a set of
set-to-value writes, so re-applying it is harmless; it is retried on database
errors and, if it still cannot be written, left to the reconciliation task.
The approval itself is never rolled back.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from django.conf import settings
from django.db import DatabaseError, transaction
from django.utils import timezone

from cancellations.models import (
    ApplicationStatus,
    CancellationApplication,
    DeliveryRecord,
    DetailStatus,
    ExtensionApplication,
    Lead,
    ManagementStatus,
)
from cancellations.services import store
from cancellations.services.consistency import (
    ConflictPolicy,
    ConsistencyReport,
    check_sibling_engagement,
    conflict_policy_from_settings,
)
from cancellations.services.errors import (
    AlreadyDecided,
    CascadeIncomplete,
    ConflictingActiveMerchants,
    InvalidStatus,
    MissingReason,
)
from cancellations.services.notifications import EventType, isoformat_local, queue_notification

logger = logging.getLogger(__name__)

DEFAULT_CASCADE_MAX_ATTEMPTS = 3


@dataclass
class DecisionResult:
    """Outcome of an administrator decision."""

    application: object
    event_type: str
    consistency: Optional[ConsistencyReport] = None
    notification_queued: bool = False

    @property
    def status(self) -> str:
        return self.application.status

    def to_dict(self) -> dict:
        data = {
            'application_id': self.application.id,
            'status': self.application.status,
            'approver': self.application.approver,
            'decided_at': self.application.decided_at.isoformat() if self.application.decided_at else None,
            'notification_queued': self.notification_queued,
        }
        if self.consistency is not None:
            data['consistency'] = self.consistency.to_dict()
        if isinstance(self.application, CancellationApplication):
            data['lead_status_updated'] = self.application.lead_status_updated
        return data


def _ensure_pending(application) -> None:
    if application.status not in ApplicationStatus.values:
        raise InvalidStatus(
            f"Application {application.id} has unknown status '{application.status}'"
        )
    if application.status != ApplicationStatus.PENDING:
        raise AlreadyDecided(
            f"Application {application.id} was already {application.status}"
        )


def _compare_and_set(application, new_status: str, approver: str, now: datetime, **extra):
    """Move a pending application to ``new_status``; AlreadyDecided if it is no longer pending."""
    model = type(application)
    updated = model.objects.filter(
        pk=application.pk,
        status=ApplicationStatus.PENDING,
    ).update(
        status=new_status,
        approver=approver,
        decided_at=now,
        updated_at=now,
        **extra
    )
    if not updated:
        logger.warning(f"Lost decision race on application {application.id}")
        raise AlreadyDecided(f"Application {application.id} was already decided")

    application.refresh_from_db()
    logger.info(f"Application {application.id} {new_status} by {approver}")
    return application


def _payload(application) -> dict:
    return {
        'application_id': application.id,
        'lead_id': application.lead_id,
        'merchant_id': application.merchant_id,
        'merchant_name': application.merchant_name,
        'customer_name': application.lead.customer_name,
        'approver': application.approver,
        'decided_at': isoformat_local(application.decided_at),
    }


def _write_cancellation_cascade(application: CancellationApplication) -> None:
    now = timezone.now()
    with transaction.atomic():
        DeliveryRecord.objects.filter(
            lead_id=application.lead_id,
            merchant_id=application.merchant_id,
        ).update(detail_status=DetailStatus.CANCELLATION_APPROVED, updated_at=now)
        Lead.objects.filter(pk=application.lead_id).update(
            management_status=ManagementStatus.DELIVERED_NO_CONTRACT,
            updated_at=now,
        )
        CancellationApplication.objects.filter(pk=application.pk).update(
            lead_status_updated=True,
            updated_at=now,
        )
    application.lead_status_updated = True


def apply_cancellation_cascade(application: CancellationApplication,
                               max_attempts: Optional[int] = None) -> None:
    """
    Write the lead / delivery updates that follow an approved cancellation.

    Args:
        application: An approved CancellationApplication
        max_attempts: Write attempts before giving up, defaults to
            settings.CASCADE_WRITE_MAX_ATTEMPTS

    Raises:
        CascadeIncomplete: Every attempt failed with a database error
    """
    if application.status != ApplicationStatus.APPROVED:
        raise InvalidStatus(
            f"Cascade requested for application {application.id} in status {application.status}"
        )

    attempts = max_attempts or getattr(settings, 'CASCADE_WRITE_MAX_ATTEMPTS', DEFAULT_CASCADE_MAX_ATTEMPTS)
    last_error = None
    for attempt in range(1, attempts + 1):
        try:
            _write_cancellation_cascade(application)
        except DatabaseError as e:
            last_error = e
            logger.warning(
                f"Cascade write for application {application.id} failed "
                f"(attempt {attempt}/{attempts}): {e}"
            )
            continue
        logger.info(
            f"Cascade applied for application {application.id}: lead {application.lead_id} "
            f"-> {ManagementStatus.DELIVERED_NO_CONTRACT}, merchant {application.merchant_id} "
            f"-> {DetailStatus.CANCELLATION_APPROVED}"
        )
        return

    logger.error(f"Cascade for application {application.id} incomplete after {attempts} attempts")
    raise CascadeIncomplete(
        f"Cancellation {application.id} was approved but lead {application.lead_id} "
        f"could not be updated; it will be reconciled"
    ) from last_error


def approve_cancellation(application_id: str, approver: str,
                         policy: Optional[str] = None,
                         now: Optional[datetime] = None) -> DecisionResult:
    """
    Approve a pending cancellation and apply its cascade.

    Args:
        application_id: CancellationApplication id
        approver: Opaque identity of the deciding administrator
        policy: ConflictPolicy value overriding settings.CANCELLATION_CONFLICT_POLICY
        now: Decision time

    Raises:
        NotFound, AlreadyDecided, InvalidStatus
        ConflictingActiveMerchants: Block policy and other merchants engaged
        CascadeIncomplete: Approved, but the cascade is left for reconciliation
    """
    now = now or timezone.now()
    application = store.find_cancellation(application_id)
    _ensure_pending(application)

    report = check_sibling_engagement(application.lead_id, application.merchant_id)
    conflict_policy = ConflictPolicy(policy) if policy else conflict_policy_from_settings()
    if report.has_conflict and conflict_policy == ConflictPolicy.BLOCK:
        logger.warning(f"Approval of {application_id} blocked: {report.message}")
        raise ConflictingActiveMerchants(report.message, report)

    _compare_and_set(
        application,
        ApplicationStatus.APPROVED,
        approver,
        now,
        consistency_warning=report.to_dict() if report.has_conflict else None,
    )

    incomplete = None
    try:
        apply_cancellation_cascade(application)
    except CascadeIncomplete as e:
        incomplete = e

    queued = queue_notification(EventType.CANCELLATION_APPROVED, _payload(application))
    if incomplete is not None:
        raise incomplete

    return DecisionResult(
        application=application,
        event_type=EventType.CANCELLATION_APPROVED,
        consistency=report,
        notification_queued=queued,
    )


def _reject(application, approver: str, reason: str, event_type: str, now: datetime) -> DecisionResult:
    _ensure_pending(application)
    _compare_and_set(application, ApplicationStatus.REJECTED, approver, now, reject_reason=reason)

    payload = _payload(application)
    payload['reject_reason'] = reason
    queued = queue_notification(event_type, payload)
    return DecisionResult(application=application, event_type=event_type, notification_queued=queued)


def reject_cancellation(application_id: str, approver: str, reason: str,
                        now: Optional[datetime] = None) -> DecisionResult:
    """
    Reject a pending cancellation. The lead and delivery record are untouched.

    Raises:
        MissingReason, NotFound, AlreadyDecided, InvalidStatus
    """
    if not reason or not reason.strip():
        raise MissingReason(f"A reason is required to reject cancellation {application_id}")
    application = store.find_cancellation(application_id)
    return _reject(application, approver, reason, EventType.CANCELLATION_REJECTED, now or timezone.now())


def approve_extension(application_id: str, approver: str,
                      now: Optional[datetime] = None) -> DecisionResult:
    """
    Approve a pending extension; later cancellations of the pair use its
    extended deadline.

    Raises:
        NotFound, AlreadyDecided, InvalidStatus
    """
    now = now or timezone.now()
    application = store.find_extension(application_id)
    _ensure_pending(application)
    _compare_and_set(application, ApplicationStatus.APPROVED, approver, now)

    payload = _payload(application)
    payload['extended_deadline'] = isoformat_local(application.extended_deadline)
    queued = queue_notification(EventType.EXTENSION_APPROVED, payload)
    return DecisionResult(
        application=application,
        event_type=EventType.EXTENSION_APPROVED,
        notification_queued=queued,
    )


def reject_extension(application_id: str, approver: str, reason: str,
                     now: Optional[datetime] = None) -> DecisionResult:
    """
    Reject a pending extension.

    Raises:
        MissingReason, NotFound, AlreadyDecided, InvalidStatus
    """
    if not reason or not reason.strip():
        raise MissingReason(f"A reason is required to reject extension {application_id}")
    application: ExtensionApplication = store.find_extension(application_id)
    return _reject(application, approver, reason, EventType.EXTENSION_REJECTED, now or timezone.now())
