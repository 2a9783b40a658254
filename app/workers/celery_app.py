"""
Celery Application Configuration

The beat schedule is the release scheduler: beat owns the periodic
entries, starts with the beat process and stops with it.
"""
from celery import Celery

from app.core.config import settings

celery_app = Celery(
    "service_marketplace",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["app.workers.tasks"]
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=300,  # 5 minutes
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)

# Beat schedule for periodic tasks
celery_app.conf.beat_schedule = {
    "release-matured-wallet-holds": {
        "task": "app.workers.tasks.release_matured_wallet_holds",
        "schedule": settings.WALLET_RELEASE_INTERVAL_SECONDS,
    },
    "check-low-stock-items": {
        "task": "app.workers.tasks.check_low_stock_items",
        "schedule": settings.LOW_STOCK_CHECK_INTERVAL_SECONDS,
    },
    "purge-expired-otps": {
        "task": "app.workers.tasks.purge_expired_otps",
        "schedule": settings.OTP_CLEANUP_INTERVAL_SECONDS,
    },
}
