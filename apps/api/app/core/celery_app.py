from celery import Celery
from celery.schedules import crontab

from app.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "risk_api",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["app.risk.tasks"],
)
celery_app.conf.timezone = settings.housekeeping_timezone
celery_app.conf.enable_utc = True
celery_app.conf.beat_schedule = {
    "reset-application-counter-daily": {
        "task": "app.risk.tasks.reset_application_counter",
        "schedule": crontab(hour=0, minute=0),
    },
}
