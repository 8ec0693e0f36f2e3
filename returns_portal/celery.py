"""
Celery Configuration for the Returns Portal

HOW IT WORKS:
1. An admin approves a return → API responds immediately
2. The notification task is pushed to the Redis queue
3. A Celery worker composes and sends the customer email
4. A failing mail server never fails the admin action
"""

import os
from celery import Celery

# Set the default Django settings module
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'returns_portal.settings')

app = Celery('returns_portal')

# Load config from Django settings (all settings starting with CELERY_)
app.config_from_object('django.conf:settings', namespace='CELERY')

# Auto-discover tasks.py in all installed apps
app.autodiscover_tasks()
