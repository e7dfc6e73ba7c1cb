from celery import Celery

from tixledger.core.config import settings

celery_app = Celery(
    "tixledger",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["tixledger.workers.tasks.subscription_expiry"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_default_queue="default",
    task_queues={
        "default": {"exchange": "default", "routing_key": "default"},
        "billing": {"exchange": "billing", "routing_key": "billing"},
    },
    beat_schedule={
        "subscription-expiry-sweep": {
            "task": "tasks.subscription_expiry",
            "schedule": float(settings.SUBSCRIPTION_SWEEP_INTERVAL_SECONDS),
        },
    },
)
