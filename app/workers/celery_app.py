"""
Celery application configuration.
"""

from celery import Celery
from celery.signals import setup_logging

from app.config import settings

# Create Celery app
celery_app = Celery(
    "settlement_engine",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "app.workers.notifications",
    ],
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="Asia/Kolkata",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=60,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_default_queue="default",
    task_routes={"app.workers.notifications.*": {"queue": "notifications"}},
    result_expires=24 * 3600,
    # Publishing must never hang a request
    broker_connection_timeout=2,
    broker_transport_options={"max_retries": 1},
)


@setup_logging.connect
def _configure_worker_logging(**kwargs) -> None:
    from app.logging_config import configure_logging

    configure_logging()
