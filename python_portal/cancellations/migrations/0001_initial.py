# Generated migration for Lead, DeliveryRecord, CancellationApplication and ExtensionApplication models

from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='Lead',
            fields=[
                ('id', models.CharField(max_length=32, primary_key=True, serialize=False)),
                ('customer_name', models.CharField(blank=True, default='', max_length=255)),
                ('work_category', models.CharField(blank=True, default='', max_length=100)),
                ('delivered_at', models.DateTimeField(db_index=True)),
                ('delivered_merchant_ids', models.JSONField(default=list)),
                ('management_status', models.CharField(choices=[('delivered', 'Delivered'), ('in_progress', 'In Progress'), ('quote_submitted', 'Quote Submitted'), ('negotiating', 'Negotiating'), ('contracted', 'Contracted'), ('delivered_no_contract', 'Delivered (No Contract)')], db_index=True, default='delivered', max_length=32)),
                ('contracted_merchant_id', models.CharField(blank=True, max_length=64, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'ordering': ['-delivered_at'],
            },
        ),
        migrations.CreateModel(
            name='DeliveryRecord',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('merchant_id', models.CharField(db_index=True, max_length=64)),
                ('delivered_at', models.DateTimeField()),
                ('detail_status', models.CharField(choices=[('unhandled', 'Unhandled'), ('in_progress', 'In Progress'), ('visited', 'Visited'), ('quote_submitted', 'Quote Submitted'), ('appointment_confirmed', 'Appointment Confirmed'), ('declined', 'Declined'), ('cancellation_approved', 'Cancellation Approved')], default='unhandled', max_length=32)),
                ('phone_count', models.PositiveIntegerField(default=0)),
                ('sms_count', models.PositiveIntegerField(default=0)),
                ('mail_count', models.PositiveIntegerField(default=0)),
                ('visit_count', models.PositiveIntegerField(default=0)),
                ('last_contact_at', models.DateTimeField(blank=True, null=True)),
                ('appointment_at', models.DateTimeField(blank=True, null=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('lead', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='deliveries', to='cancellations.lead')),
            ],
            options={
                'ordering': ['lead', 'merchant_id'],
            },
        ),
        migrations.CreateModel(
            name='ExtensionApplication',
            fields=[
                ('id', models.CharField(max_length=32, primary_key=True, serialize=False)),
                ('merchant_id', models.CharField(db_index=True, max_length=64)),
                ('merchant_name', models.CharField(blank=True, default='', max_length=255)),
                ('applicant_name', models.CharField(blank=True, default='', max_length=255)),
                ('contact_date', models.DateTimeField()),
                ('appointment_date', models.DateTimeField()),
                ('reason', models.TextField()),
                ('basic_deadline', models.DateTimeField()),
                ('extended_deadline', models.DateTimeField()),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('approved', 'Approved'), ('rejected', 'Rejected')], db_index=True, default='pending', max_length=20)),
                ('approver', models.CharField(blank=True, default='', max_length=255)),
                ('decided_at', models.DateTimeField(blank=True, null=True)),
                ('reject_reason', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('lead', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='extension_applications', to='cancellations.lead')),
            ],
            options={
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='CancellationApplication',
            fields=[
                ('id', models.CharField(max_length=32, primary_key=True, serialize=False)),
                ('merchant_id', models.CharField(db_index=True, max_length=64)),
                ('merchant_name', models.CharField(blank=True, default='', max_length=255)),
                ('applicant_name', models.CharField(blank=True, default='', max_length=255)),
                ('reason_category', models.CharField(max_length=64)),
                ('reason_detail', models.CharField(max_length=255)),
                ('additional_info', models.JSONField(blank=True, default=dict)),
                ('phone_call_count', models.PositiveIntegerField(default=0)),
                ('sms_count', models.PositiveIntegerField(default=0)),
                ('last_contact_at', models.DateTimeField(blank=True, null=True)),
                ('contact_at', models.DateTimeField(blank=True, null=True)),
                ('basic_deadline', models.DateTimeField()),
                ('applicable_deadline', models.DateTimeField()),
                ('is_within_deadline', models.BooleanField(default=True)),
                ('application_text', models.TextField(blank=True, default='')),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('approved', 'Approved'), ('rejected', 'Rejected')], db_index=True, default='pending', max_length=20)),
                ('approver', models.CharField(blank=True, default='', max_length=255)),
                ('decided_at', models.DateTimeField(blank=True, null=True)),
                ('reject_reason', models.TextField(blank=True, default='')),
                ('lead_status_updated', models.BooleanField(default=False)),
                ('consistency_warning', models.JSONField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('extension', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='+', to='cancellations.extensionapplication')),
                ('lead', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='cancellation_applications', to='cancellations.lead')),
            ],
            options={
                'ordering': ['-created_at'],
            },
        ),
        migrations.AddConstraint(
            model_name='deliveryrecord',
            constraint=models.UniqueConstraint(fields=('lead', 'merchant_id'), name='uniq_delivery_per_merchant'),
        ),
        migrations.AddIndex(
            model_name='extensionapplication',
            index=models.Index(fields=['status', 'created_at'], name='ext_app_status_created_idx'),
        ),
        migrations.AddConstraint(
            model_name='extensionapplication',
            constraint=models.UniqueConstraint(condition=models.Q(('status__in', ['pending', 'approved'])), fields=('lead', 'merchant_id'), name='uniq_active_extension'),
        ),
        migrations.AddIndex(
            model_name='cancellationapplication',
            index=models.Index(fields=['status', 'created_at'], name='cancel_app_status_created_idx'),
        ),
        migrations.AddConstraint(
            model_name='cancellationapplication',
            constraint=models.UniqueConstraint(condition=models.Q(('status__in', ['pending', 'approved'])), fields=('lead', 'merchant_id'), name='uniq_active_cancellation'),
        ),
    ]
