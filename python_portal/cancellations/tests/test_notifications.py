"""
Unit tests for notification rendering.
"""
import pytest

from cancellations.services.notifications import ADMIN, MERCHANT, EventType, audience_for, format_deadline, render
from cancellations.tests.helpers import TOKYO, jst


BASE_PAYLOAD = {
    'application_id': 'CN240120103000123456',
    'lead_id': 'CV0001',
    'merchant_id': 'M001',
    'customer_name': 'Taro Yamada',
}


class TestRender:
    """Tests for render function."""

    def test_cancellation_approved(self):
        rendered = render(EventType.CANCELLATION_APPROVED, BASE_PAYLOAD)

        assert rendered.subject == 'Cancellation approved: CV0001'
        assert 'CN240120103000123456' in rendered.long_body
        assert 'Taro Yamada (case CV0001)' in rendered.short_body

    def test_cancellation_rejected_includes_reason_verbatim(self):
        payload = dict(BASE_PAYLOAD, reject_reason='Only one call on record; please call twice more.')

        rendered = render('cancellation_rejected', payload)

        assert 'Reason: Only one call on record; please call twice more.' in rendered.long_body
        assert 'Only one call on record; please call twice more.' in rendered.short_body

    def test_extension_approved_formats_deadline(self):
        payload = dict(BASE_PAYLOAD, extended_deadline='2024-02-29T23:59:59+09:00')

        rendered = render(EventType.EXTENSION_APPROVED, payload)

        assert 'New cancellation deadline: 2024-02-29 23:59' in rendered.long_body
        assert rendered.short_body.endswith('New deadline: 2024-02-29 23:59')

    def test_extension_deadline_shown_in_given_zone(self):
        payload = dict(BASE_PAYLOAD, extended_deadline='2024-02-29T14:59:59+00:00')

        rendered = render(EventType.EXTENSION_APPROVED, payload, tz=TOKYO)

        assert '2024-02-29 23:59' in rendered.long_body

    def test_extension_rejected(self):
        rendered = render(EventType.EXTENSION_REJECTED, dict(BASE_PAYLOAD, reject_reason='No appointment'))

        assert rendered.subject == 'Deadline extension rejected: CV0001'
        assert 'Reason: No appointment' in rendered.long_body

    def test_unknown_event_type(self):
        with pytest.raises(ValueError):
            render('lead_contracted', BASE_PAYLOAD)

    def test_pure(self):
        assert render(EventType.CANCELLATION_APPROVED, BASE_PAYLOAD) == render(
            EventType.CANCELLATION_APPROVED, BASE_PAYLOAD
        )

    def test_missing_customer_name(self):
        rendered = render(EventType.CANCELLATION_APPROVED, {'lead_id': 'CV0009', 'application_id': 'CN1'})

        assert 'case CV0009' in rendered.short_body


class TestReviewRender:
    """Submission events rendered for administrators."""

    def test_cancellation_submitted(self):
        payload = dict(
            BASE_PAYLOAD,
            merchant_name='Reform Tokyo',
            applicant_name='Suzuki',
            phone_call_count=3,
            sms_count=2,
            applicable_deadline='2024-01-22T23:59:59+09:00',
            application_text='[Cancellation request]\n\nCustomer: Taro Yamada',
            consistency={'classification': 'clear', 'message': 'No other merchant is engaged on lead CV0001'},
        )

        rendered = render(EventType.CANCELLATION_SUBMITTED, payload, tz=TOKYO)

        assert rendered.subject == 'Cancellation request: CV0001'
        assert 'from Reform Tokyo' in rendered.long_body
        assert 'Applicant: Suzuki' in rendered.long_body
        assert 'Follow-up: 3 phone calls, 2 SMS' in rendered.long_body
        assert 'Deadline: 2024-01-22 23:59' in rendered.long_body
        assert rendered.long_body.endswith('[Cancellation request]\n\nCustomer: Taro Yamada')
        assert 'Warning' not in rendered.long_body
        assert rendered.short_body == 'Cancellation request for Taro Yamada (case CV0001) from Reform Tokyo.'

    def test_cancellation_submitted_with_engaged_sibling(self):
        payload = dict(BASE_PAYLOAD, consistency={
            'classification': 'warning',
            'message': 'Other merchants are still engaged on lead CV0001: A (visited)',
        })

        rendered = render(EventType.CANCELLATION_SUBMITTED, payload)

        assert 'Warning: Other merchants are still engaged on lead CV0001: A (visited)' in rendered.long_body
        assert rendered.short_body.endswith('Other merchants are still engaged.')
        # Merchant id stands in for a missing name
        assert 'from M001' in rendered.short_body

    def test_extension_submitted(self):
        payload = dict(
            BASE_PAYLOAD,
            application_id='DE240119100000000001',
            contact_date='2024-01-17T11:00:00+09:00',
            appointment_date='2024-02-03T10:00:00+09:00',
            extended_deadline='2024-02-29T23:59:59+09:00',
            reason='Customer is travelling until February',
        )

        rendered = render('extension_submitted', payload, tz=TOKYO)

        assert rendered.subject == 'Deadline extension request: CV0001'
        assert 'Contact date: 2024-01-17 11:00' in rendered.long_body
        assert 'Appointment date: 2024-02-03 10:00' in rendered.long_body
        assert 'Deadline if approved: 2024-02-29 23:59' in rendered.long_body
        assert 'Reason: Customer is travelling until February' in rendered.long_body


@pytest.mark.parametrize('event_type, expected', [
    (EventType.CANCELLATION_SUBMITTED, ADMIN),
    ('extension_submitted', ADMIN),
    (EventType.CANCELLATION_APPROVED, MERCHANT),
    ('extension_rejected', MERCHANT),
])
def test_audience(event_type, expected):
    assert audience_for(event_type) == expected


def test_format_deadline_accepts_datetime():
    assert format_deadline(jst(2025, 1, 31, 23, 59, 59)) == '2025-01-31 23:59'
