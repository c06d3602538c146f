"""
Celery configuration for the merchant portal gateway.
"""
import os
from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'portal_gateway.settings')

app = Celery('portal_gateway')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()
