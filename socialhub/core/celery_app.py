"""
Celery application for background task processing.

Tasks:
  - OAuth token refresh sweep (every TOKEN_REFRESH_INTERVAL_SECONDS)
  - On-demand refresh of a single connection
"""
from celery import Celery
from socialhub.core.config import get_settings

settings = get_settings()

celery = Celery(
    "socialhub",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

celery.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Reliability
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_reject_on_worker_lost=True,

    # Result expiry
    result_expires=3600,

    # Beat schedule: periodic background jobs
    beat_schedule={
        "refresh-expiring-tokens": {
            "task": "socialhub.tasks.token_refresh.refresh_expiring_tokens",
            "schedule": settings.TOKEN_REFRESH_INTERVAL_SECONDS,
        },
    },
)

# Auto-discover tasks in the tasks package
celery.autodiscover_tasks(["socialhub.tasks"], related_name="token_refresh")
