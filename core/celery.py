from celery import Celery
from core.config import settings

# Redis is both broker and result backend
celery_app = Celery(
    "order_payments",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["tasks.email_tasks"]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    # Confirmation emails are small; a stuck SMTP server should not pin a worker
    task_time_limit=5 * 60,
    task_soft_time_limit=4 * 60,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
    task_always_eager=settings.TESTING,
    task_eager_propagates=False,
)
