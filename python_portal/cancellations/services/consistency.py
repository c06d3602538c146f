"""
Cross-merchant consistency check run before a cancellation is approved.

When one merchant cancels while another is still working the same lead
(visited, quoting, appointment set), the cancellation may be an attempt to
avoid a fee on a case that is actually alive. The check only reports; what
to do with a warning is the caller's ConflictPolicy.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from django.conf import settings
from django.db import models

from cancellations.models import DeliveryRecord, DetailStatus
from cancellations.services.errors import InvalidStatus

logger = logging.getLogger(__name__)

ENGAGED_STATUSES = frozenset({
    DetailStatus.IN_PROGRESS.value,
    DetailStatus.VISITED.value,
    DetailStatus.QUOTE_SUBMITTED.value,
    DetailStatus.APPOINTMENT_CONFIRMED.value,
})


class ConflictPolicy(models.TextChoices):
    WARN = 'warn', 'Warn'
    BLOCK = 'block', 'Block'


class Classification(models.TextChoices):
    CLEAR = 'clear', 'Clear'
    WARNING = 'warning', 'Warning'


def conflict_policy_from_settings() -> ConflictPolicy:
    value = getattr(settings, 'CANCELLATION_CONFLICT_POLICY', ConflictPolicy.WARN)
    try:
        return ConflictPolicy(value)
    except ValueError:
        logger.error(f"Unknown CANCELLATION_CONFLICT_POLICY '{value}', falling back to warn")
        return ConflictPolicy.WARN


@dataclass(frozen=True)
class EngagedMerchant:
    merchant_id: str
    detail_status: str
    phone_count: int = 0
    sms_count: int = 0
    visit_count: int = 0
    appointment_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            'merchant_id': self.merchant_id,
            'detail_status': self.detail_status,
            'phone_count': self.phone_count,
            'sms_count': self.sms_count,
            'visit_count': self.visit_count,
            'appointment_at': self.appointment_at.isoformat() if self.appointment_at else None,
        }


@dataclass
class ConsistencyReport:
    lead_id: str
    merchant_id: str
    engaged_merchants: List[EngagedMerchant] = field(default_factory=list)

    @property
    def classification(self) -> Classification:
        return Classification.WARNING if self.engaged_merchants else Classification.CLEAR

    @property
    def has_conflict(self) -> bool:
        return bool(self.engaged_merchants)

    @property
    def message(self) -> str:
        if not self.engaged_merchants:
            return f"No other merchant is engaged on lead {self.lead_id}"
        names = ', '.join(
            f"{m.merchant_id} ({m.detail_status})" for m in self.engaged_merchants
        )
        return f"Other merchants are still engaged on lead {self.lead_id}: {names}"

    def to_dict(self) -> dict:
        return {
            'lead_id': self.lead_id,
            'merchant_id': self.merchant_id,
            'classification': self.classification.value,
            'message': self.message,
            'engaged_merchants': [m.to_dict() for m in self.engaged_merchants],
        }


def check_sibling_engagement(lead_id: str, merchant_id: str) -> ConsistencyReport:
    """
    Report the other merchants of a lead that are still actively engaged.

    Args:
        lead_id: Lead being cancelled
        merchant_id: Merchant whose cancellation is under review (excluded)

    Raises:
        InvalidStatus: A sibling delivery carries an unknown detail status
    """
    report = ConsistencyReport(lead_id=lead_id, merchant_id=merchant_id)
    siblings = DeliveryRecord.objects.filter(lead_id=lead_id).exclude(merchant_id=merchant_id)

    for delivery in siblings:
        if delivery.detail_status not in DetailStatus.values:
            raise InvalidStatus(
                f"Delivery of lead {lead_id} to merchant {delivery.merchant_id} has "
                f"unknown detail status '{delivery.detail_status}'"
            )
        if delivery.detail_status in ENGAGED_STATUSES:
            report.engaged_merchants.append(EngagedMerchant(
                merchant_id=delivery.merchant_id,
                detail_status=delivery.detail_status,
                phone_count=delivery.phone_count,
                sms_count=delivery.sms_count,
                visit_count=delivery.visit_count,
                appointment_at=delivery.appointment_at,
            ))

    if report.has_conflict:
        logger.warning(report.message)
    else:
        logger.debug(report.message)
    return report
