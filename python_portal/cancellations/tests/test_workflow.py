"""
Unit tests for the approval / rejection workflow.
"""
import pytest
from unittest.mock import patch
from django.db import OperationalError

from cancellations.models import (
    ApplicationStatus,
    CancellationApplication,
    DeliveryRecord,
    DetailStatus,
    ExtensionApplication,
    ManagementStatus,
)
from cancellations.services import workflow
from cancellations.services.errors import (
    AlreadyDecided,
    CascadeIncomplete,
    ConflictingActiveMerchants,
    InvalidStatus,
    MissingReason,
    NotFound,
)
from cancellations.services.notifications import EventType
from cancellations.tests.helpers import jst


@pytest.fixture
def mock_dispatch():
    with patch('cancellations.tasks.dispatch_notification') as mock_task:
        yield mock_task


@pytest.mark.django_db
class TestApproveCancellation:
    """Tests for approve_cancellation."""

    def test_approval_applies_cascade(self, delivered_lead, make_cancellation, mock_dispatch):
        make_cancellation(delivered_lead)

        result = workflow.approve_cancellation('CN0001', 'admin@example.com', now=jst(2024, 1, 21, 9, 0))

        application = CancellationApplication.objects.get(pk='CN0001')
        assert application.status == ApplicationStatus.APPROVED
        assert application.approver == 'admin@example.com'
        assert application.decided_at == jst(2024, 1, 21, 9, 0)
        assert application.lead_status_updated is True
        assert application.consistency_warning is None

        delivered_lead.refresh_from_db()
        assert delivered_lead.management_status == ManagementStatus.DELIVERED_NO_CONTRACT
        delivery = DeliveryRecord.objects.get(lead=delivered_lead, merchant_id='M001')
        assert delivery.detail_status == DetailStatus.CANCELLATION_APPROVED

        assert result.status == ApplicationStatus.APPROVED
        assert result.notification_queued is True
        event_type, payload = mock_dispatch.delay.call_args.args
        assert event_type == EventType.CANCELLATION_APPROVED
        assert payload['application_id'] == 'CN0001'
        assert payload['merchant_id'] == 'M001'
        assert payload['customer_name'] == 'Taro Yamada'

    def test_cascade_leaves_other_deliveries_alone(self, make_lead, make_cancellation, mock_dispatch):
        lead = make_lead(merchants=('M001', 'M002'))
        make_cancellation(lead, 'M001')

        workflow.approve_cancellation('CN0001', 'admin')

        other = DeliveryRecord.objects.get(lead=lead, merchant_id='M002')
        assert other.detail_status == DetailStatus.UNHANDLED

    def test_second_approval_is_already_decided(self, delivered_lead, make_cancellation, mock_dispatch):
        make_cancellation(delivered_lead)
        workflow.approve_cancellation('CN0001', 'admin-1')

        with pytest.raises(AlreadyDecided):
            workflow.approve_cancellation('CN0001', 'admin-2')

        assert CancellationApplication.objects.get(pk='CN0001').approver == 'admin-1'
        assert mock_dispatch.delay.call_count == 1

    def test_reject_after_approve_is_already_decided(self, delivered_lead, make_cancellation, mock_dispatch):
        make_cancellation(delivered_lead)
        workflow.approve_cancellation('CN0001', 'admin-1')

        with pytest.raises(AlreadyDecided):
            workflow.reject_cancellation('CN0001', 'admin-2', 'changed my mind')

    def test_lost_race_is_already_decided(self, delivered_lead, make_cancellation, mock_dispatch):
        make_cancellation(delivered_lead)
        # Another administrator decides between our read and our write
        real_check = workflow.check_sibling_engagement

        def decide_concurrently(lead_id, merchant_id):
            CancellationApplication.objects.filter(pk='CN0001').update(
                status=ApplicationStatus.REJECTED, approver='admin-2'
            )
            return real_check(lead_id, merchant_id)

        with patch('cancellations.services.workflow.check_sibling_engagement', side_effect=decide_concurrently):
            with pytest.raises(AlreadyDecided):
                workflow.approve_cancellation('CN0001', 'admin-1')

        delivered_lead.refresh_from_db()
        assert delivered_lead.management_status == ManagementStatus.DELIVERED
        mock_dispatch.delay.assert_not_called()

    def test_missing_application(self, mock_dispatch):
        with pytest.raises(NotFound):
            workflow.approve_cancellation('CN404', 'admin')

    def test_unknown_stored_status(self, delivered_lead, make_cancellation, mock_dispatch):
        make_cancellation(delivered_lead)
        CancellationApplication.objects.filter(pk='CN0001').update(status='archived')

        with pytest.raises(InvalidStatus):
            workflow.approve_cancellation('CN0001', 'admin')

    def test_enqueue_failure_does_not_fail_decision(self, delivered_lead, make_cancellation, mock_dispatch):
        make_cancellation(delivered_lead)
        mock_dispatch.delay.side_effect = ConnectionError('broker down')

        result = workflow.approve_cancellation('CN0001', 'admin')

        assert result.status == ApplicationStatus.APPROVED
        assert result.notification_queued is False
        assert result.application.lead_status_updated is True


@pytest.mark.django_db
class TestConsistencyPolicy:
    """
    Merchant A has visited the customer, merchant B has not touched the
    lead and asks to cancel.
    """

    @pytest.fixture
    def engaged_sibling(self, make_lead, make_cancellation):
        lead = make_lead(merchants=('A', 'B'))
        DeliveryRecord.objects.filter(lead=lead, merchant_id='A').update(detail_status=DetailStatus.VISITED)
        make_cancellation(lead, 'B')
        return lead

    def test_warn_policy_records_warning_and_approves(self, engaged_sibling, mock_dispatch):
        result = workflow.approve_cancellation('CN0001', 'admin', policy='warn')

        assert result.status == ApplicationStatus.APPROVED
        assert result.consistency.has_conflict is True
        warning = CancellationApplication.objects.get(pk='CN0001').consistency_warning
        assert warning['classification'] == 'warning'
        assert [m['merchant_id'] for m in warning['engaged_merchants']] == ['A']

    def test_block_policy_keeps_application_pending(self, engaged_sibling, mock_dispatch):
        with pytest.raises(ConflictingActiveMerchants) as excinfo:
            workflow.approve_cancellation('CN0001', 'admin', policy='block')

        assert excinfo.value.to_dict()['engaged_merchants'][0]['merchant_id'] == 'A'
        application = CancellationApplication.objects.get(pk='CN0001')
        assert application.status == ApplicationStatus.PENDING
        engaged_sibling.refresh_from_db()
        assert engaged_sibling.management_status == ManagementStatus.DELIVERED
        mock_dispatch.delay.assert_not_called()

    def test_block_policy_from_settings(self, engaged_sibling, mock_dispatch, settings):
        settings.CANCELLATION_CONFLICT_POLICY = 'block'

        with pytest.raises(ConflictingActiveMerchants):
            workflow.approve_cancellation('CN0001', 'admin')

    def test_block_policy_without_conflict_approves(self, delivered_lead, make_cancellation, mock_dispatch):
        make_cancellation(delivered_lead)

        result = workflow.approve_cancellation('CN0001', 'admin', policy='block')

        assert result.status == ApplicationStatus.APPROVED


@pytest.mark.django_db
class TestCascadeRetry:
    """Tests for apply_cancellation_cascade retries."""

    def test_transient_error_is_retried(self, delivered_lead, make_cancellation, mock_dispatch):
        make_cancellation(delivered_lead)
        real_write = workflow._write_cancellation_cascade
        calls = []

        def flaky(application):
            calls.append(application.id)
            if len(calls) == 1:
                raise OperationalError('database is locked')
            real_write(application)

        with patch('cancellations.services.workflow._write_cancellation_cascade', side_effect=flaky):
            result = workflow.approve_cancellation('CN0001', 'admin')

        assert len(calls) == 2
        assert result.application.lead_status_updated is True

    def test_exhausted_retries_keep_approval(self, delivered_lead, make_cancellation, mock_dispatch, settings):
        settings.CASCADE_WRITE_MAX_ATTEMPTS = 2
        make_cancellation(delivered_lead)

        with patch('cancellations.services.workflow._write_cancellation_cascade',
                   side_effect=OperationalError('database is locked')) as mock_write:
            with pytest.raises(CascadeIncomplete):
                workflow.approve_cancellation('CN0001', 'admin')

        assert mock_write.call_count == 2
        application = CancellationApplication.objects.get(pk='CN0001')
        assert application.status == ApplicationStatus.APPROVED
        assert application.lead_status_updated is False
        mock_dispatch.delay.assert_called_once()

    def test_cascade_is_idempotent(self, delivered_lead, make_cancellation, mock_dispatch):
        make_cancellation(delivered_lead)
        result = workflow.approve_cancellation('CN0001', 'admin')

        workflow.apply_cancellation_cascade(result.application)

        delivered_lead.refresh_from_db()
        assert delivered_lead.management_status == ManagementStatus.DELIVERED_NO_CONTRACT

    def test_cascade_requires_approved_application(self, delivered_lead, make_cancellation):
        application = make_cancellation(delivered_lead)

        with pytest.raises(InvalidStatus):
            workflow.apply_cancellation_cascade(application)


@pytest.mark.django_db
class TestRejectCancellation:
    """Tests for reject_cancellation."""

    def test_rejection_records_reason_and_leaves_lead(self, delivered_lead, make_cancellation, mock_dispatch):
        make_cancellation(delivered_lead)

        result = workflow.reject_cancellation('CN0001', 'admin', 'Only one call on record')

        application = CancellationApplication.objects.get(pk='CN0001')
        assert application.status == ApplicationStatus.REJECTED
        assert application.reject_reason == 'Only one call on record'
        assert application.lead_status_updated is False
        delivered_lead.refresh_from_db()
        assert delivered_lead.management_status == ManagementStatus.DELIVERED
        assert DeliveryRecord.objects.get(merchant_id='M001').detail_status == DetailStatus.UNHANDLED

        event_type, payload = mock_dispatch.delay.call_args.args
        assert event_type == EventType.CANCELLATION_REJECTED
        assert payload['reject_reason'] == 'Only one call on record'
        assert result.notification_queued is True

    @pytest.mark.parametrize('reason', ['', '   ', None])
    def test_reason_is_mandatory(self, delivered_lead, make_cancellation, mock_dispatch, reason):
        make_cancellation(delivered_lead)

        with pytest.raises(MissingReason):
            workflow.reject_cancellation('CN0001', 'admin', reason)

        assert CancellationApplication.objects.get(pk='CN0001').status == ApplicationStatus.PENDING

    def test_resubmission_allowed_after_rejection(self, evaluator, delivered_lead, make_cancellation, mock_dispatch):
        make_cancellation(delivered_lead)
        workflow.reject_cancellation('CN0001', 'admin', 'Insufficient evidence')

        verdict = evaluator.evaluate_cancellation('CV0001', 'M001', now=jst(2024, 1, 20))

        assert verdict.eligible is True


@pytest.mark.django_db
class TestExtensionDecisions:
    """Tests for approve_extension / reject_extension."""

    def test_approval_extends_cancellation_deadline(self, evaluator, delivered_lead, make_extension, mock_dispatch):
        make_extension(delivered_lead, status=ApplicationStatus.PENDING)

        result = workflow.approve_extension('DE0001', 'admin', now=jst(2024, 1, 19, 15, 0))

        assert result.status == ApplicationStatus.APPROVED
        event_type, payload = mock_dispatch.delay.call_args.args
        assert event_type == EventType.EXTENSION_APPROVED
        assert payload['extended_deadline'].startswith('2024-02-29T23:59:59')

        verdict = evaluator.evaluate_cancellation('CV0001', 'M001', now=jst(2024, 2, 10))
        assert verdict.eligible is True
        assert verdict.effective_deadline == jst(2024, 2, 29, 23, 59, 59)

    def test_rejection(self, delivered_lead, make_extension, mock_dispatch):
        make_extension(delivered_lead, status=ApplicationStatus.PENDING)

        workflow.reject_extension('DE0001', 'admin', 'No appointment evidence')

        extension = ExtensionApplication.objects.get(pk='DE0001')
        assert extension.status == ApplicationStatus.REJECTED
        assert extension.reject_reason == 'No appointment evidence'
        assert mock_dispatch.delay.call_args.args[0] == EventType.EXTENSION_REJECTED

    def test_rejection_requires_reason(self, delivered_lead, make_extension, mock_dispatch):
        make_extension(delivered_lead, status=ApplicationStatus.PENDING)

        with pytest.raises(MissingReason):
            workflow.reject_extension('DE0001', 'admin', '')

    def test_decided_extension(self, delivered_lead, make_extension, mock_dispatch):
        make_extension(delivered_lead, status=ApplicationStatus.APPROVED)

        with pytest.raises(AlreadyDecided):
            workflow.approve_extension('DE0001', 'admin')
        with pytest.raises(AlreadyDecided):
            workflow.reject_extension('DE0001', 'admin', 'late')
