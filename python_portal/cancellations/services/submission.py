"""
Merchant-facing submission of cancellation and extension applications.

Validates eligibility and evidence, then persists through the Application
Store. Nothing is written when any check fails. A stored application is
announced to administrators for review.
"""
import logging
from datetime import datetime
from typing import Optional

from django.utils import timezone

from cancellations.models import DeliveryRecord
from cancellations.services import store
from cancellations.services.consistency import check_sibling_engagement
from cancellations.services.eligibility import (
    ACTIVE_CANCELLATION,
    ACTIVE_EXTENSION,
    EligibilityEvaluator,
    EligibilityPolicy,
)
from cancellations.services.errors import InvalidStatus, NotEligible, Shortfall
from cancellations.services.notifications import EventType, isoformat_local, queue_notification

logger = logging.getLogger(__name__)


def _local(value: Optional[datetime]) -> str:
    if value is None:
        return ''
    if timezone.is_aware(value):
        value = timezone.localtime(value)
    return f"{value:%Y-%m-%d %H:%M}"


def compose_application_text(*, lead_id: str, customer_name: str, reason_label: str,
                             reason_detail: str, additional_info: dict,
                             phone_calls: int, sms_count: int,
                             last_contact_at: Optional[datetime]) -> str:
    """Human-readable summary of a cancellation request for the reviewer."""
    lines = [
        "[Cancellation request]",
        "",
        f"Customer: {customer_name}",
        f"Case ID: {lead_id}",
        "",
        "[Reason]",
        f"{reason_label} - {reason_detail}",
        "",
    ]

    details = [str(value) for value in (additional_info or {}).values() if value]
    if details:
        lines.append("[Details]")
        lines.extend(details)
        lines.append("")

    if phone_calls or sms_count or last_contact_at:
        lines.append("[Follow-up history]")
        if phone_calls:
            lines.append(f"Phone calls: {phone_calls}")
        if sms_count:
            lines.append(f"SMS: {sms_count}")
        if last_contact_at:
            lines.append(f"Last contact: {_local(last_contact_at)}")
        lines.append("")

    lines.append("For the reasons above, we request cancellation of this case.")
    return "\n".join(lines)


def _review_payload(application) -> dict:
    return {
        'application_id': application.id,
        'lead_id': application.lead_id,
        'merchant_id': application.merchant_id,
        'merchant_name': application.merchant_name,
        'applicant_name': application.applicant_name,
        'customer_name': application.lead.customer_name,
    }


def _consistency_snapshot(application) -> Optional[dict]:
    """Sibling engagement at submission time, None when it cannot be read."""
    try:
        return check_sibling_engagement(application.lead_id, application.merchant_id).to_dict()
    except InvalidStatus as e:
        logger.error(f"Consistency check for application {application.id} skipped: {e}")
        return None


def submit_cancellation(
    merchant_id: str,
    lead_id: str,
    reason_category: str,
    reason_detail: str,
    *,
    phone_call_count: Optional[int] = None,
    sms_count: Optional[int] = None,
    last_contact_at: Optional[datetime] = None,
    contact_at: Optional[datetime] = None,
    applicant_name: str = '',
    merchant_name: str = '',
    additional_info: Optional[dict] = None,
    evaluator: Optional[EligibilityEvaluator] = None,
    now: Optional[datetime] = None,
):
    """
    Validate and persist a cancellation application.

    Evidence counters that are not supplied default to the counters on the
    delivery record.

    Returns:
        The stored CancellationApplication (status pending)

    Raises:
        NotFound: The lead was never delivered to the merchant
        NotEligible: Deadline passed, lead contracted, or evidence insufficient
        DuplicateApplication: An active cancellation exists for the pair
    """
    now = now or timezone.now()
    evaluator = evaluator or EligibilityEvaluator(EligibilityPolicy.from_settings())

    verdict = evaluator.evaluate_cancellation(lead_id, merchant_id, now=now)
    verdict.raise_for_ineligible(ACTIVE_CANCELLATION)

    if not (reason_detail or '').strip():
        raise NotEligible.from_shortfalls([
            Shortfall(requirement='reason_detail', message="a reason detail is required"),
        ])

    delivery = DeliveryRecord.objects.select_related('lead').get(lead_id=lead_id, merchant_id=merchant_id)
    if phone_call_count is None:
        phone_call_count = delivery.phone_count
    if sms_count is None:
        sms_count = delivery.sms_count
    if last_contact_at is None:
        last_contact_at = delivery.last_contact_at

    shortfalls = evaluator.check_evidence(reason_category, phone_call_count, sms_count)
    if shortfalls:
        logger.info(
            f"Cancellation for lead {lead_id} by merchant {merchant_id} refused: "
            f"{len(shortfalls)} evidence shortfalls"
        )
        raise NotEligible.from_shortfalls(shortfalls)

    category = evaluator.policy.reason_catalog.get(reason_category)
    additional_info = additional_info or {}
    application_text = compose_application_text(
        lead_id=lead_id,
        customer_name=delivery.lead.customer_name,
        reason_label=category.label,
        reason_detail=reason_detail,
        additional_info=additional_info,
        phone_calls=phone_call_count,
        sms_count=sms_count,
        last_contact_at=last_contact_at,
    )

    application = store.insert_cancellation(
        lead_id,
        merchant_id,
        merchant_name=merchant_name,
        applicant_name=applicant_name,
        reason_category=reason_category,
        reason_detail=reason_detail,
        additional_info=additional_info,
        phone_call_count=phone_call_count,
        sms_count=sms_count,
        last_contact_at=last_contact_at,
        contact_at=contact_at,
        basic_deadline=verdict.basic_deadline,
        applicable_deadline=verdict.effective_deadline,
        is_within_deadline=verdict.is_within_deadline,
        extension_id=verdict.extension_id,
        application_text=application_text,
    )

    payload = _review_payload(application)
    payload.update({
        'reason_label': category.label,
        'application_text': application.application_text,
        'phone_call_count': application.phone_call_count,
        'sms_count': application.sms_count,
        'applicable_deadline': isoformat_local(application.applicable_deadline),
        'consistency': _consistency_snapshot(application),
    })
    queue_notification(EventType.CANCELLATION_SUBMITTED, payload)
    return application


def submit_extension(
    merchant_id: str,
    lead_id: str,
    contact_date: Optional[datetime],
    appointment_date: Optional[datetime],
    reason: str,
    *,
    applicant_name: str = '',
    merchant_name: str = '',
    evaluator: Optional[EligibilityEvaluator] = None,
    now: Optional[datetime] = None,
):
    """
    Validate and persist a deadline-extension application.

    Raises:
        NotFound: The lead was never delivered to the merchant
        NotEligible: Missing fields, basic deadline passed, lead contracted,
            or a cancellation is already active for the pair
        DuplicateApplication: An active extension exists for the pair
    """
    missing = [
        Shortfall(requirement=name, message=f"{name} is required")
        for name, value in (
            ('contact_date', contact_date),
            ('appointment_date', appointment_date),
            ('reason', (reason or '').strip()),
        )
        if not value
    ]
    if missing:
        raise NotEligible.from_shortfalls(missing)

    now = now or timezone.now()
    evaluator = evaluator or EligibilityEvaluator(EligibilityPolicy.from_settings())

    verdict = evaluator.evaluate_extension(lead_id, merchant_id, now=now)
    verdict.raise_for_ineligible(ACTIVE_EXTENSION)

    application = store.insert_extension(
        lead_id,
        merchant_id,
        merchant_name=merchant_name,
        applicant_name=applicant_name,
        contact_date=contact_date,
        appointment_date=appointment_date,
        reason=reason,
        basic_deadline=verdict.basic_deadline,
        extended_deadline=verdict.extended_deadline,
    )

    payload = _review_payload(application)
    payload.update({
        'contact_date': isoformat_local(application.contact_date),
        'appointment_date': isoformat_local(application.appointment_date),
        'reason': application.reason,
        'extended_deadline': isoformat_local(application.extended_deadline),
    })
    queue_notification(EventType.EXTENSION_SUBMITTED, payload)
    return application
