from celery import Celery
from storefront.core.config import settings

celery_app = Celery(
    "storefront",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["storefront.tasks.email_tasks", "storefront.tasks.cache_tasks"]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    task_track_started=True,

    task_time_limit=300,        # Hard limit (5 min)
    task_soft_time_limit=240,   # Soft limit (4 min)

    worker_prefetch_multiplier=4,
    worker_max_tasks_per_child=1000,

    task_acks_late=True,
    task_reject_on_worker_lost=True,

    # Request handlers enqueue side effects; a dead broker must fail fast.
    task_publish_retry=True,
    task_publish_retry_policy={
        "max_retries": 1,
        "interval_start": 0,
        "interval_step": 0.2,
        "interval_max": 0.5,
    },

    result_expires=3600,  # 1 hour
)

celery_app.conf.task_routes = {
    "storefront.tasks.email_tasks.*": {"queue": "emails"},
    "storefront.tasks.cache_tasks.*": {"queue": "cache"},
}
