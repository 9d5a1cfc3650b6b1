"""
Celery configuration for the Django application.

Workers run:
- Webhook processing (payments.tasks.process_webhook_event)
- Background payment verification (payments.tasks.verify_pending_payment)
- Request notifications (deliveries.tasks.send_request_notification)

Beat runs the webhook retry and cleanup jobs listed in
settings.CELERY_BEAT_SCHEDULE.

Redis is both the message broker and result backend.

    celery -A config worker -l info
    celery -A config beat -l info
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Looks for a tasks.py module in each installed app
app.autodiscover_tasks()
