from core.config import settings
from infrastructure.tasks.config import CELERY_BEAT_SCHEDULE, celery_app


def test_abandoned_checkout_job_is_scheduled_on_housekeeping_queue():
    entry = CELERY_BEAT_SCHEDULE["close-abandoned-checkouts"]

    assert entry["task"] == "orders.close_abandoned_checkouts"
    assert entry["schedule"] == float(settings.checkout.abandoned_schedule_seconds)
    assert celery_app.conf.task_routes["orders.*"] == {"queue": "housekeeping"}
    assert celery_app.conf.task_acks_late is True


def test_task_is_registered_under_its_beat_name():
    from infrastructure.tasks.tasks import orders  # noqa: F401

    assert "orders.close_abandoned_checkouts" in celery_app.tasks
