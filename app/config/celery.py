"""
Celery application for the payments worker.

The worker runs webhook processing, payout initiation after capture and
the periodic reconciliation/cleanup jobs listed in
settings.CELERY_BEAT_SCHEDULE. Run it with:

    celery -A config worker -B -l info
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("payments")

# CELERY_-prefixed names in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
