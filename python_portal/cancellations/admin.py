"""
Django admin configuration for cancellations app.

Applications are decided through the workflow API, never edited here: the
admin is a read-only audit view.
"""
from django.contrib import admin
from cancellations.models import (
    CancellationApplication,
    DeliveryRecord,
    ExtensionApplication,
    Lead,
)


class DeliveryRecordInline(admin.TabularInline):
    """Inline display of the merchants a lead was delivered to."""
    model = DeliveryRecord
    extra = 0
    readonly_fields = ('merchant_id', 'delivered_at', 'detail_status', 'phone_count', 'sms_count',
                       'mail_count', 'visit_count', 'last_contact_at', 'appointment_at')
    can_delete = False


class ReadOnlyAdmin(admin.ModelAdmin):

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Lead)
class LeadAdmin(ReadOnlyAdmin):
    """Admin interface for Lead model."""

    list_display = ('id', 'customer_name', 'management_status', 'delivered_at', 'contracted_merchant_id')
    list_filter = ('management_status', 'delivered_at')
    search_fields = ('id', 'customer_name')
    readonly_fields = ('id', 'customer_name', 'work_category', 'delivered_at', 'delivered_merchant_ids',
                       'management_status', 'contracted_merchant_id', 'created_at', 'updated_at')

    inlines = [DeliveryRecordInline]


@admin.register(CancellationApplication)
class CancellationApplicationAdmin(ReadOnlyAdmin):
    """Admin interface for CancellationApplication model."""

    list_display = ('id', 'lead', 'merchant_id', 'reason_category', 'status', 'lead_status_updated',
                    'created_at')
    list_filter = ('status', 'reason_category', 'lead_status_updated', 'created_at')
    search_fields = ('id', 'lead__id', 'merchant_id', 'merchant_name')
    readonly_fields = [f.name for f in CancellationApplication._meta.fields]

    fieldsets = (
        ('Status', {
            'fields': ('id', 'status', 'approver', 'decided_at', 'reject_reason', 'lead_status_updated')
        }),
        ('Request', {
            'fields': ('lead', 'merchant_id', 'merchant_name', 'applicant_name',
                       'reason_category', 'reason_detail', 'additional_info', 'application_text')
        }),
        ('Evidence', {
            'fields': ('phone_call_count', 'sms_count', 'last_contact_at', 'contact_at')
        }),
        ('Deadlines', {
            'fields': ('basic_deadline', 'applicable_deadline', 'is_within_deadline', 'extension')
        }),
        ('Audit', {
            'fields': ('consistency_warning', 'created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )


@admin.register(ExtensionApplication)
class ExtensionApplicationAdmin(ReadOnlyAdmin):
    """Admin interface for ExtensionApplication model."""

    list_display = ('id', 'lead', 'merchant_id', 'status', 'extended_deadline', 'created_at')
    list_filter = ('status', 'created_at')
    search_fields = ('id', 'lead__id', 'merchant_id', 'merchant_name')
    readonly_fields = [f.name for f in ExtensionApplication._meta.fields]
