import os
from celery import Celery
from celery.schedules import crontab
from celery.utils.log import get_task_logger

from .database import SessionLocal
from .services import accounts, tokens

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "memory://")
celery_app = Celery("tasks", broker=CELERY_BROKER_URL)
celery_app.conf.task_always_eager = (
    CELERY_BROKER_URL == "memory://" or os.getenv("TESTING") == "1"
)

_logger = get_task_logger(__name__)


@celery_app.task
def cleanup_expired_tokens() -> int:
    db = SessionLocal()
    try:
        removed = tokens.cleanup_expired(db)
    finally:
        db.close()
    _logger.info("expired token cleanup finished", extra={"removed": removed})
    return removed


@celery_app.task
def cleanup_expired_refresh_tokens() -> int:
    db = SessionLocal()
    try:
        removed = accounts.cleanup_expired_refresh_tokens(db)
    finally:
        db.close()
    _logger.info("expired refresh token cleanup finished", extra={"removed": removed})
    return removed


def enqueue_cleanup_expired_tokens():
    if celery_app.conf.task_always_eager:
        return cleanup_expired_tokens()
    return cleanup_expired_tokens.delay()


celery_app.conf.beat_schedule = {
    "cleanup-expired-tokens": {
        "task": "reqhub.tasks.cleanup_expired_tokens",
        "schedule": crontab(minute=0),
    },
    "cleanup-expired-refresh-tokens": {
        "task": "reqhub.tasks.cleanup_expired_refresh_tokens",
        "schedule": crontab(minute=30),
    },
}
