from celery import Celery

from app.core.config import settings

celery_app = Celery(
    "cafe_auth",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["app.mycelery.worker"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_ignore_result=True,
    beat_schedule={
        "purge-expired-auth-records": {
            "task": "purge_expired_auth_records",
            "schedule": 10 * 60.0,
        },
    },
)
