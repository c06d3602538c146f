"""
Request and response serializers for the cancellation API.
"""
from rest_framework import serializers

from cancellations.models import ApplicationStatus, CancellationApplication, ExtensionApplication
from cancellations.services.consistency import ConflictPolicy, check_sibling_engagement


class CancellationSubmissionSerializer(serializers.Serializer):
    lead_id = serializers.CharField(max_length=32)
    reason_category = serializers.CharField(max_length=64)
    reason_detail = serializers.CharField(max_length=255)
    # Counters fall back to the delivery record when omitted
    phone_call_count = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    sms_count = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    last_contact_at = serializers.DateTimeField(required=False, allow_null=True)
    contact_at = serializers.DateTimeField(required=False, allow_null=True)
    applicant_name = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    merchant_name = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    additional_info = serializers.DictField(child=serializers.CharField(allow_blank=True),
                                            required=False, default=dict)


class ExtensionSubmissionSerializer(serializers.Serializer):
    lead_id = serializers.CharField(max_length=32)
    # Presence of these three is an eligibility rule, checked by the submission service
    contact_date = serializers.DateTimeField(required=False, allow_null=True, default=None)
    appointment_date = serializers.DateTimeField(required=False, allow_null=True, default=None)
    reason = serializers.CharField(required=False, allow_blank=True, default='')
    applicant_name = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    merchant_name = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')


class ApproveSerializer(serializers.Serializer):
    approver = serializers.CharField(max_length=255)
    policy = serializers.ChoiceField(choices=ConflictPolicy.choices, required=False)


class RejectSerializer(serializers.Serializer):
    approver = serializers.CharField(max_length=255)
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class ApplicationListQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=ApplicationStatus.choices, required=False)


class CancellationApplicationSerializer(serializers.ModelSerializer):
    lead_id = serializers.CharField(read_only=True)
    extension_id = serializers.CharField(read_only=True, allow_null=True)
    # Live sibling engagement, shown to the approver before deciding
    consistency = serializers.SerializerMethodField()

    class Meta:
        model = CancellationApplication
        fields = (
            'id', 'lead_id', 'merchant_id', 'merchant_name', 'applicant_name',
            'reason_category', 'reason_detail', 'additional_info',
            'phone_call_count', 'sms_count', 'last_contact_at', 'contact_at',
            'basic_deadline', 'applicable_deadline', 'is_within_deadline', 'extension_id',
            'application_text', 'status', 'approver', 'decided_at', 'reject_reason',
            'lead_status_updated', 'consistency_warning', 'consistency', 'created_at', 'updated_at',
        )
        read_only_fields = fields

    def get_consistency(self, obj):
        if obj.status != ApplicationStatus.PENDING:
            return None
        return check_sibling_engagement(obj.lead_id, obj.merchant_id).to_dict()


class ExtensionApplicationSerializer(serializers.ModelSerializer):
    lead_id = serializers.CharField(read_only=True)

    class Meta:
        model = ExtensionApplication
        fields = (
            'id', 'lead_id', 'merchant_id', 'merchant_name', 'applicant_name',
            'contact_date', 'appointment_date', 'reason',
            'basic_deadline', 'extended_deadline',
            'status', 'approver', 'decided_at', 'reject_reason',
            'created_at', 'updated_at',
        )
        read_only_fields = fields
