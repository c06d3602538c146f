"""
Eligibility of a lead-merchant pair for cancellation and extension requests.

All queries here are read-only. The Application Store re-checks the
duplicate invariant at write time, so a verdict is advisory until insert.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import Dict, List, Optional

from django.conf import settings
from django.utils import timezone

from cancellations.models import (
    ACTIVE_APPLICATION_STATUSES,
    ApplicationStatus,
    CancellationApplication,
    DeliveryRecord,
    ExtensionApplication,
)
from cancellations.services.deadlines import (
    BASIC_WINDOW_DAYS,
    basic_deadline,
    days_elapsed,
    extended_deadline,
)
from cancellations.services.errors import (
    DuplicateApplication,
    NotEligible,
    NotFound,
    Shortfall,
)
from cancellations.services.reasons import ReasonCatalog, load_reason_catalog

logger = logging.getLogger(__name__)

# Shortfall requirement codes
CONTRACT = 'contract'
DEADLINE = 'deadline'
ACTIVE_CANCELLATION = 'active_cancellation'
ACTIVE_EXTENSION = 'active_extension'
REASON_CATEGORY = 'reason_category'


@dataclass(frozen=True)
class EligibilityPolicy:
    """Reference data and deadline policy the evaluator works with."""

    reason_catalog: ReasonCatalog
    tz: Optional[tzinfo] = None
    window_days: int = BASIC_WINDOW_DAYS

    @classmethod
    def from_settings(cls) -> 'EligibilityPolicy':
        return cls(
            reason_catalog=load_reason_catalog(),
            tz=timezone.get_default_timezone(),
            window_days=getattr(settings, 'CANCELLATION_BASIC_WINDOW_DAYS', BASIC_WINDOW_DAYS),
        )


@dataclass
class EligibilityVerdict:
    lead_id: str
    merchant_id: str
    evaluated_at: datetime
    delivered_at: datetime
    basic_deadline: datetime
    effective_deadline: datetime
    extended_deadline: Optional[datetime] = None
    extension_id: Optional[str] = None
    shortfalls: List[Shortfall] = field(default_factory=list)

    @property
    def eligible(self) -> bool:
        return not self.shortfalls

    @property
    def is_within_deadline(self) -> bool:
        return self.evaluated_at <= self.effective_deadline

    @property
    def extension_applied(self) -> bool:
        return self.extension_id is not None

    def raise_for_ineligible(self, duplicate_requirement: str) -> None:
        """
        Raise the error matching the first blocking condition.

        Args:
            duplicate_requirement: Requirement code that means "an application
                of the requested kind is already active"
        """
        if self.eligible:
            return
        for shortfall in self.shortfalls:
            if shortfall.requirement == duplicate_requirement:
                raise DuplicateApplication(shortfall.message)
        raise NotEligible.from_shortfalls(self.shortfalls)


@dataclass
class Case:
    """A lead as listed to a merchant choosing what to cancel or extend."""

    lead_id: str
    customer_name: str
    work_category: str
    management_status: str
    delivered_at: datetime
    days_elapsed: int
    deadline: datetime
    extended_deadline: Optional[datetime] = None
    extension_applied: bool = False

    def to_dict(self) -> dict:
        return {
            'lead_id': self.lead_id,
            'customer_name': self.customer_name,
            'work_category': self.work_category,
            'management_status': self.management_status,
            'delivered_at': self.delivered_at.isoformat(),
            'days_elapsed': self.days_elapsed,
            'deadline': self.deadline.isoformat(),
            'extended_deadline': self.extended_deadline.isoformat() if self.extended_deadline else None,
            'extension_applied': self.extension_applied,
        }


@dataclass(frozen=True)
class PairState:
    """Application state of one lead-merchant pair that eligibility depends on."""

    has_active_cancellation: bool = False
    has_active_extension: bool = False
    approved_extension_id: Optional[str] = None


class EligibilityEvaluator:
    """
    Decides whether a merchant may submit a cancellation or an extension
    request for a lead.
    """

    def __init__(self, policy: EligibilityPolicy):
        self.policy = policy

    def _get_delivery(self, lead_id: str, merchant_id: str) -> DeliveryRecord:
        try:
            return DeliveryRecord.objects.select_related('lead').get(
                lead_id=lead_id, merchant_id=merchant_id
            )
        except DeliveryRecord.DoesNotExist:
            raise NotFound(f"Lead {lead_id} was not delivered to merchant {merchant_id}")

    def _pair_state(self, lead_id: str, merchant_id: str) -> PairState:
        return self._merchant_pair_states(merchant_id, lead_id=lead_id).get(lead_id, PairState())

    def _merchant_pair_states(self, merchant_id: str, lead_id: Optional[str] = None) -> Dict[str, PairState]:
        """Pair states of a merchant keyed by lead id, two queries regardless of lead count."""
        cancellations = CancellationApplication.objects.filter(
            merchant_id=merchant_id,
            status__in=ACTIVE_APPLICATION_STATUSES,
        )
        extensions = ExtensionApplication.objects.filter(
            merchant_id=merchant_id,
            status__in=ACTIVE_APPLICATION_STATUSES,
        )
        if lead_id is not None:
            cancellations = cancellations.filter(lead_id=lead_id)
            extensions = extensions.filter(lead_id=lead_id)

        cancelled = set(cancellations.values_list('lead_id', flat=True))
        extended = set()
        approved = {}
        for extension_lead_id, extension_id, extension_status in extensions.values_list('lead_id', 'id', 'status'):
            extended.add(extension_lead_id)
            if extension_status == ApplicationStatus.APPROVED.value:
                approved[extension_lead_id] = extension_id

        return {
            key: PairState(
                has_active_cancellation=key in cancelled,
                has_active_extension=key in extended,
                approved_extension_id=approved.get(key),
            )
            for key in cancelled | extended
        }

    def _basic_deadline(self, delivery: DeliveryRecord) -> datetime:
        return basic_deadline(delivery.delivered_at, tz=self.policy.tz,
                              window_days=self.policy.window_days)

    def _common_shortfalls(self, delivery: DeliveryRecord, state: PairState) -> List[Shortfall]:
        shortfalls = []
        if delivery.lead.is_contracted:
            shortfalls.append(Shortfall(
                requirement=CONTRACT,
                message=f"lead {delivery.lead_id} is already contracted",
            ))
        if state.has_active_cancellation:
            shortfalls.append(Shortfall(
                requirement=ACTIVE_CANCELLATION,
                message=f"an active cancellation application already exists for lead {delivery.lead_id}",
            ))
        return shortfalls

    def _deadline_shortfall(self, deadline: datetime, now: datetime) -> Optional[Shortfall]:
        if now <= deadline:
            return None
        local_deadline = timezone.localtime(deadline, self.policy.tz) if timezone.is_aware(deadline) else deadline
        return Shortfall(
            requirement=DEADLINE,
            message=f"submission deadline passed ({local_deadline:%Y-%m-%d %H:%M})",
        )

    def _cancellation_verdict(self, delivery: DeliveryRecord, now: datetime,
                              state: PairState) -> EligibilityVerdict:
        basic = self._basic_deadline(delivery)
        verdict = EligibilityVerdict(
            lead_id=delivery.lead_id,
            merchant_id=delivery.merchant_id,
            evaluated_at=now,
            delivered_at=delivery.delivered_at,
            basic_deadline=basic,
            effective_deadline=basic,
            shortfalls=self._common_shortfalls(delivery, state),
        )

        if state.approved_extension_id is not None:
            verdict.extension_id = state.approved_extension_id
            verdict.extended_deadline = extended_deadline(delivery.delivered_at, tz=self.policy.tz)
            verdict.effective_deadline = verdict.extended_deadline

        deadline_shortfall = self._deadline_shortfall(verdict.effective_deadline, now)
        if deadline_shortfall:
            verdict.shortfalls.append(deadline_shortfall)
        return verdict

    def _extension_verdict(self, delivery: DeliveryRecord, now: datetime,
                           state: PairState) -> EligibilityVerdict:
        # An extension is always measured against the basic window
        basic = self._basic_deadline(delivery)
        verdict = EligibilityVerdict(
            lead_id=delivery.lead_id,
            merchant_id=delivery.merchant_id,
            evaluated_at=now,
            delivered_at=delivery.delivered_at,
            basic_deadline=basic,
            effective_deadline=basic,
            extended_deadline=extended_deadline(delivery.delivered_at, tz=self.policy.tz),
            shortfalls=self._common_shortfalls(delivery, state),
        )

        if state.has_active_extension:
            verdict.shortfalls.append(Shortfall(
                requirement=ACTIVE_EXTENSION,
                message=f"an active extension application already exists for lead {delivery.lead_id}",
            ))

        deadline_shortfall = self._deadline_shortfall(basic, now)
        if deadline_shortfall:
            verdict.shortfalls.append(deadline_shortfall)
        return verdict

    def evaluate_cancellation(self, lead_id: str, merchant_id: str,
                              now: Optional[datetime] = None) -> EligibilityVerdict:
        """
        Verdict for a cancellation request on one lead-merchant pair.

        Raises:
            NotFound: The lead was never delivered to the merchant
        """
        now = now or timezone.now()
        delivery = self._get_delivery(lead_id, merchant_id)
        verdict = self._cancellation_verdict(delivery, now, self._pair_state(lead_id, merchant_id))
        logger.debug(
            f"Cancellation eligibility for lead {lead_id} / merchant {merchant_id}: "
            f"eligible={verdict.eligible}, deadline={verdict.effective_deadline.isoformat()}"
        )
        return verdict

    def evaluate_extension(self, lead_id: str, merchant_id: str,
                           now: Optional[datetime] = None) -> EligibilityVerdict:
        """
        Verdict for an extension request on one lead-merchant pair.

        Raises:
            NotFound: The lead was never delivered to the merchant
        """
        now = now or timezone.now()
        delivery = self._get_delivery(lead_id, merchant_id)
        verdict = self._extension_verdict(delivery, now, self._pair_state(lead_id, merchant_id))
        logger.debug(
            f"Extension eligibility for lead {lead_id} / merchant {merchant_id}: "
            f"eligible={verdict.eligible}"
        )
        return verdict

    def check_evidence(self, reason_category: str, phone_calls: int, sms_count: int) -> List[Shortfall]:
        """Follow-up evidence shortfalls for a reason category."""
        category = self.policy.reason_catalog.get(reason_category)
        if category is None:
            return [Shortfall(
                requirement=REASON_CATEGORY,
                message=f"unknown cancellation reason category '{reason_category}'",
            )]
        return category.evidence_shortfalls(phone_calls, sms_count)

    def _list_cases(self, merchant_id: str, now: datetime, build_verdict) -> List[Case]:
        deliveries = DeliveryRecord.objects.filter(merchant_id=merchant_id).select_related('lead')
        states = self._merchant_pair_states(merchant_id)
        cases = []
        for delivery in deliveries:
            verdict = build_verdict(delivery, now, states.get(delivery.lead_id, PairState()))
            if not verdict.eligible:
                continue
            cases.append(Case(
                lead_id=delivery.lead_id,
                customer_name=delivery.lead.customer_name,
                work_category=delivery.lead.work_category,
                management_status=delivery.lead.management_status,
                delivered_at=delivery.delivered_at,
                days_elapsed=days_elapsed(delivery.delivered_at, now),
                deadline=verdict.effective_deadline,
                extended_deadline=verdict.extended_deadline,
                extension_applied=verdict.extension_applied,
            ))
        return cases

    def list_cancelable_cases(self, merchant_id: str, now: Optional[datetime] = None) -> List[Case]:
        """Leads the merchant may currently submit a cancellation for."""
        now = now or timezone.now()
        cases = self._list_cases(merchant_id, now, self._cancellation_verdict)
        logger.info(f"Merchant {merchant_id}: {len(cases)} cancelable cases")
        return cases

    def list_extension_eligible_cases(self, merchant_id: str, now: Optional[datetime] = None) -> List[Case]:
        """Leads the merchant may currently request a deadline extension for."""
        now = now or timezone.now()
        cases = self._list_cases(merchant_id, now, self._extension_verdict)
        logger.info(f"Merchant {merchant_id}: {len(cases)} extension-eligible cases")
        return cases
