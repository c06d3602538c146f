"""
Data models for the cancellation / deadline-extension workflow.

Leads and delivery records are produced by the intake and distribution
subsystem; this app only reads them and applies the cancellation cascade.
Applications are never deleted, they are the audit trail of every request.
"""
from django.db import models
from django.db.models import Q


class ManagementStatus(models.TextChoices):
    DELIVERED = 'delivered', 'Delivered'
    IN_PROGRESS = 'in_progress', 'In Progress'
    QUOTE_SUBMITTED = 'quote_submitted', 'Quote Submitted'
    NEGOTIATING = 'negotiating', 'Negotiating'
    CONTRACTED = 'contracted', 'Contracted'
    DELIVERED_NO_CONTRACT = 'delivered_no_contract', 'Delivered (No Contract)'


class DetailStatus(models.TextChoices):
    UNHANDLED = 'unhandled', 'Unhandled'
    IN_PROGRESS = 'in_progress', 'In Progress'
    VISITED = 'visited', 'Visited'
    QUOTE_SUBMITTED = 'quote_submitted', 'Quote Submitted'
    APPOINTMENT_CONFIRMED = 'appointment_confirmed', 'Appointment Confirmed'
    DECLINED = 'declined', 'Declined'
    CANCELLATION_APPROVED = 'cancellation_approved', 'Cancellation Approved'


class ApplicationStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    APPROVED = 'approved', 'Approved'
    REJECTED = 'rejected', 'Rejected'


ACTIVE_APPLICATION_STATUSES = (ApplicationStatus.PENDING, ApplicationStatus.APPROVED)


class Lead(models.Model):
    """
    An inbound customer inquiry ("CV") distributed to one or more merchants.
    """

    id = models.CharField(max_length=32, primary_key=True)
    customer_name = models.CharField(max_length=255, blank=True, default='')
    work_category = models.CharField(max_length=100, blank=True, default='')
    delivered_at = models.DateTimeField(db_index=True)
    delivered_merchant_ids = models.JSONField(default=list)
    management_status = models.CharField(
        max_length=32,
        choices=ManagementStatus.choices,
        default=ManagementStatus.DELIVERED,
        db_index=True
    )
    contracted_merchant_id = models.CharField(max_length=64, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-delivered_at']

    def __str__(self):
        return f"Lead {self.id} - {self.management_status}"

    @property
    def is_contracted(self):
        return bool(self.contracted_merchant_id) or self.management_status == ManagementStatus.CONTRACTED


class DeliveryRecord(models.Model):
    """
    One lead delivered to one merchant, with the merchant's follow-up counters.
    """

    lead = models.ForeignKey(
        Lead,
        on_delete=models.PROTECT,
        related_name='deliveries'
    )
    merchant_id = models.CharField(max_length=64, db_index=True)
    delivered_at = models.DateTimeField()
    detail_status = models.CharField(
        max_length=32,
        choices=DetailStatus.choices,
        default=DetailStatus.UNHANDLED
    )
    phone_count = models.PositiveIntegerField(default=0)
    sms_count = models.PositiveIntegerField(default=0)
    mail_count = models.PositiveIntegerField(default=0)
    visit_count = models.PositiveIntegerField(default=0)
    last_contact_at = models.DateTimeField(null=True, blank=True)
    appointment_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['lead', 'merchant_id']
        constraints = [
            models.UniqueConstraint(fields=['lead', 'merchant_id'], name='uniq_delivery_per_merchant'),
        ]

    def __str__(self):
        return f"Delivery of {self.lead_id} to {self.merchant_id} - {self.detail_status}"


class CancellationApplication(models.Model):
    """
    A merchant's formal request to withdraw from a lead.
    """

    id = models.CharField(max_length=32, primary_key=True)
    lead = models.ForeignKey(
        Lead,
        on_delete=models.PROTECT,
        related_name='cancellation_applications'
    )
    merchant_id = models.CharField(max_length=64, db_index=True)
    merchant_name = models.CharField(max_length=255, blank=True, default='')
    applicant_name = models.CharField(max_length=255, blank=True, default='')
    reason_category = models.CharField(max_length=64)
    reason_detail = models.CharField(max_length=255)
    additional_info = models.JSONField(default=dict, blank=True)

    # Evidence copied at submission time
    phone_call_count = models.PositiveIntegerField(default=0)
    sms_count = models.PositiveIntegerField(default=0)
    last_contact_at = models.DateTimeField(null=True, blank=True)
    contact_at = models.DateTimeField(null=True, blank=True)

    basic_deadline = models.DateTimeField()
    applicable_deadline = models.DateTimeField()
    is_within_deadline = models.BooleanField(default=True)
    extension = models.ForeignKey(
        'ExtensionApplication',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='+'
    )
    application_text = models.TextField(blank=True, default='')

    status = models.CharField(
        max_length=20,
        choices=ApplicationStatus.choices,
        default=ApplicationStatus.PENDING,
        db_index=True
    )
    approver = models.CharField(max_length=255, blank=True, default='')
    decided_at = models.DateTimeField(null=True, blank=True)
    reject_reason = models.TextField(blank=True, default='')
    lead_status_updated = models.BooleanField(default=False)
    consistency_warning = models.JSONField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['lead', 'merchant_id'],
                condition=Q(status__in=['pending', 'approved']),
                name='uniq_active_cancellation',
            ),
        ]
        indexes = [
            models.Index(fields=['status', 'created_at'], name='cancel_app_status_created_idx'),
        ]

    def __str__(self):
        return f"Cancellation {self.id} for {self.lead_id} by {self.merchant_id} - {self.status}"


class ExtensionApplication(models.Model):
    """
    A merchant's request to push the cancellation deadline to the end of the
    month following delivery.
    """

    id = models.CharField(max_length=32, primary_key=True)
    lead = models.ForeignKey(
        Lead,
        on_delete=models.PROTECT,
        related_name='extension_applications'
    )
    merchant_id = models.CharField(max_length=64, db_index=True)
    merchant_name = models.CharField(max_length=255, blank=True, default='')
    applicant_name = models.CharField(max_length=255, blank=True, default='')
    contact_date = models.DateTimeField()
    appointment_date = models.DateTimeField()
    reason = models.TextField()

    basic_deadline = models.DateTimeField()
    extended_deadline = models.DateTimeField()

    status = models.CharField(
        max_length=20,
        choices=ApplicationStatus.choices,
        default=ApplicationStatus.PENDING,
        db_index=True
    )
    approver = models.CharField(max_length=255, blank=True, default='')
    decided_at = models.DateTimeField(null=True, blank=True)
    reject_reason = models.TextField(blank=True, default='')

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['lead', 'merchant_id'],
                condition=Q(status__in=['pending', 'approved']),
                name='uniq_active_extension',
            ),
        ]
        indexes = [
            models.Index(fields=['status', 'created_at'], name='ext_app_status_created_idx'),
        ]

    def __str__(self):
        return f"Extension {self.id} for {self.lead_id} by {self.merchant_id} - {self.status}"
