from celery import Celery

from mathkids.config import settings

celery_app = Celery(
    "mathkids",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["mathkids.tasks.tokens"],
)
celery_app.conf.update(
    timezone="UTC",
    enable_utc=True,
    task_ignore_result=True,
    beat_schedule={
        "purge-expired-tokens": {
            "task": "mathkids.tasks.tokens.purge_expired_tokens",
            "schedule": float(settings.token_sweep_interval_seconds),
        },
    },
)
