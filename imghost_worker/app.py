from datetime import timedelta

from celery import Celery
from kombu import Exchange, Queue

from imghost.core.config import get_settings
from imghost.core.logging import configure_logging

settings = get_settings()
configure_logging()

celery_app = Celery(
    "imghost_worker",
    broker=settings.celery_broker_url,
    backend=settings.redis_url,
    include=["imghost_worker.tasks.cleanup"],
)
celery_app.conf.task_track_started = True
celery_app.conf.worker_prefetch_multiplier = 1
celery_app.conf.worker_hijack_root_logger = False

default_exchange = Exchange("default", type="direct")
celery_app.conf.task_queues = (
    Queue("default", default_exchange, routing_key="default"),
    Queue("maintenance", default_exchange, routing_key="maintenance"),
)
celery_app.conf.task_default_queue = "default"
celery_app.conf.task_routes = {
    "cleanup_expired_images": {"queue": "maintenance"},
}

celery_app.conf.beat_schedule = {
    "cleanup-expired-images": {
        "task": "cleanup_expired_images",
        "schedule": timedelta(minutes=settings.cleanup_interval_minutes),
    },
}
