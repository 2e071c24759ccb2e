"""Celery worker and beat entry point.

Run the worker with ``celery -A worker worker`` and the scheduler with
``celery -A worker beat`` from the backend directory.
"""

import logging

from celery.signals import setup_logging as celery_setup_logging

from celery_app import celery_app
from integrations.provider_registry import get_provider_registry
from jobs.dispatcher import CeleryDispatcher
from jobs.registry import JOB_DEFINITIONS, build_beat_schedule, build_job_context
from jobs.tasks import register_tasks
from logging_config import setup_logging

logger = logging.getLogger(__name__)

celery_app.conf.beat_schedule = build_beat_schedule(JOB_DEFINITIONS)


@celery_setup_logging.connect
def _configure_worker_logging(**kwargs) -> None:
    """Use our logging setup instead of Celery's root logger hijack."""
    setup_logging()


dispatcher = CeleryDispatcher(celery_app)
job_context = build_job_context(get_provider_registry(), dispatcher)
tasks = register_tasks(celery_app, JOB_DEFINITIONS, job_context)


if __name__ == "__main__":
    celery_app.start()
