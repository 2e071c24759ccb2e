"""The Celery application shared by the API and the worker.

Only broker and serializer settings live here. Task registration and the
beat schedule stay in ``worker`` so the API can enqueue by name without
importing job handlers or building provider clients.
"""

from celery import Celery

from config import settings

celery_app = Celery(
    "bank_sync",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)
