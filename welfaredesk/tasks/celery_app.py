"""
Celery application configuration.

    celery -A welfaredesk.tasks.celery_app worker -B
"""

from celery import Celery

from welfaredesk.core.config import settings

app = Celery(
    "welfaredesk-worker",
    broker=settings.worker.broker_url,
    backend=settings.worker.result_backend,
    include=[
        "welfaredesk.tasks.scheduled",
    ],
)

# Celery configuration
app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Task routing
    task_routes={
        "welfaredesk.tasks.scheduled.*": {"queue": "scheduled"},
    },

    # Retry settings
    task_default_retry_delay=60,
    task_max_retries=3,

    # Result backend settings
    result_expires=3600,

    # Worker settings
    worker_prefetch_multiplier=1,

    # Beat schedule (periodic tasks)
    beat_schedule={
        "expire-role-assignments": {
            "task": "welfaredesk.tasks.scheduled.expire_role_assignments",
            "schedule": settings.worker.expiry_sweep_interval,
        },
    },
)


if __name__ == "__main__":
    app.start()
