from celery import Celery
from celery.schedules import crontab

from app.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "wiki_admin",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["app.worker.tasks_wiki_permissions"],
)

celery_app.conf.update(
    task_acks_late=True,
    task_track_started=True,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    broker_connection_retry_on_startup=True,
    task_routes={
        "app.worker.tasks_wiki_permissions.check_wiki_permissions_task": {"queue": "wiki_permissions"},
    },
    beat_schedule={
        "daily-wiki-permission-check": {
            "task": "app.worker.tasks_wiki_permissions.check_wiki_permissions_task",
            "schedule": crontab(
                minute=settings.wiki_permission_check_minute,
                hour=settings.wiki_permission_check_hour,
            ),
            "kwargs": {"reason": "schedule"},
        }
    },
)
