"""Celery beat schedule.

Entries reference tasks by their registered name so the schedule can be
loaded without importing the task modules.
"""
from __future__ import annotations

from core.config import settings

CELERY_BEAT_SCHEDULE = {
    "close-abandoned-checkouts": {
        "task": "orders.close_abandoned_checkouts",
        "schedule": float(settings.checkout.abandoned_schedule_seconds),
        "options": {"queue": "housekeeping"},
    },
}
