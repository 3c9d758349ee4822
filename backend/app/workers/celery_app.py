from celery import Celery

from app.core.config import settings

celery_app = Celery(
    "reimbursement_worker",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["app.workers.notification_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    task_ignore_result=True,
    task_soft_time_limit=60,
    task_routes={"notifications.*": {"queue": "notifications"}},
    worker_prefetch_multiplier=1,
    broker_connection_retry_on_startup=True,
)
