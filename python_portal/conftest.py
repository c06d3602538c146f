import os
import sys
import pytest

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'portal_gateway.settings')

from cancellations.tests.helpers import TOKYO, jst  # noqa: E402


@pytest.fixture(autouse=True)
def isolated_settings(settings):
    """Keep tests off the network and on a fixed configuration."""
    settings.TIME_ZONE = 'Asia/Tokyo'
    settings.MESSAGING_API_URL = ''
    settings.MESSAGING_API_TOKEN = ''
    settings.CANCELLATION_CONFLICT_POLICY = 'warn'
    settings.CASCADE_WRITE_MAX_ATTEMPTS = 3
    return settings


@pytest.fixture
def reason_catalog():
    """A small catalog with one evidence-gated and one free category."""
    from cancellations.services.reasons import ReasonCatalog

    return ReasonCatalog.from_dict({
        'no_contact': {
            'label': 'Customer could not be reached',
            'requires_follow_up': True,
            'min_phone_calls': 3,
            'min_sms': 2,
        },
        'customer_cancel_phone': {
            'label': 'Customer cancelled by phone',
            'requires_follow_up': False,
        },
    })


@pytest.fixture
def evaluator(reason_catalog):
    from cancellations.services.eligibility import EligibilityEvaluator, EligibilityPolicy

    return EligibilityEvaluator(EligibilityPolicy(reason_catalog=reason_catalog, tz=TOKYO))


@pytest.fixture
def make_lead(db):
    """Factory for a lead delivered to one or more merchants."""
    from cancellations.models import DeliveryRecord, Lead

    def _make_lead(lead_id='CV0001', merchants=('M001',), delivered_at=None, **lead_fields):
        delivered_at = delivered_at or jst(2024, 1, 15, 10, 0)
        lead = Lead.objects.create(
            id=lead_id,
            customer_name=lead_fields.pop('customer_name', 'Taro Yamada'),
            work_category=lead_fields.pop('work_category', 'Exterior painting'),
            delivered_at=delivered_at,
            delivered_merchant_ids=list(merchants),
            **lead_fields
        )
        for merchant_id in merchants:
            DeliveryRecord.objects.create(
                lead=lead,
                merchant_id=merchant_id,
                delivered_at=delivered_at,
            )
        return lead

    return _make_lead


@pytest.fixture
def delivered_lead(make_lead):
    """CV0001, delivered 2024-01-15 10:00 JST to M001."""
    return make_lead()


@pytest.fixture
def make_extension(db):
    """Factory for an extension application stored directly, bypassing eligibility."""
    from cancellations.models import ApplicationStatus, ExtensionApplication
    from cancellations.services.deadlines import basic_deadline, extended_deadline

    def _make_extension(lead, merchant_id='M001', status=ApplicationStatus.APPROVED, application_id='DE0001'):
        return ExtensionApplication.objects.create(
            id=application_id,
            lead=lead,
            merchant_id=merchant_id,
            contact_date=jst(2024, 1, 16, 12, 0),
            appointment_date=jst(2024, 2, 5, 14, 0),
            reason='Customer asked to meet after the new year holidays',
            basic_deadline=basic_deadline(lead.delivered_at, tz=TOKYO),
            extended_deadline=extended_deadline(lead.delivered_at, tz=TOKYO),
            status=status,
        )

    return _make_extension


@pytest.fixture
def make_cancellation(db):
    """Factory for a cancellation application stored directly, bypassing eligibility."""
    from cancellations.models import ApplicationStatus, CancellationApplication
    from cancellations.services.deadlines import basic_deadline

    def _make_cancellation(lead, merchant_id='M001', status=ApplicationStatus.PENDING,
                           application_id='CN0001', **fields):
        deadline = basic_deadline(lead.delivered_at, tz=TOKYO)
        return CancellationApplication.objects.create(
            id=application_id,
            lead=lead,
            merchant_id=merchant_id,
            reason_category=fields.pop('reason_category', 'customer_cancel_phone'),
            reason_detail=fields.pop('reason_detail', 'Customer decided not to proceed'),
            basic_deadline=deadline,
            applicable_deadline=deadline,
            status=status,
            **fields
        )

    return _make_cancellation
