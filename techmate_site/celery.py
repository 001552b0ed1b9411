# techmate_site/celery.py
"""
Celery configuration for the periodic subscription sweeps.

The beat schedule lives in settings (CELERY_BEAT_SCHEDULE):
- subscriptions.tasks.expire_overdue_subscriptions, hourly
- subscriptions.tasks.reset_free_tier_usage, first day of each month
"""

import os
from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'techmate_site.settings')

app = Celery('techmate_site')

# Load configuration from Django settings with 'CELERY' namespace
app.config_from_object('django.conf:settings', namespace='CELERY')

# Auto-discover tasks from all registered Django apps
app.autodiscover_tasks()
