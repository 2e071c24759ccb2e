"""Celery task wrappers around the job registry.

Each task opens its own session, runs the handler and, when the handler
raises, asks the retry policy whether and when to try again.
"""

import dataclasses
import json
import logging
from typing import Any, Callable

from celery import Celery, Task

from database import session_scope
from jobs.registry import JobContext, JobDefinition
from jobs.retry_policy import MAX_ATTEMPTS, next_retry_delay

logger = logging.getLogger(__name__)


def to_payload(result: Any) -> Any:
    """JSON-safe form of a handler result (dataclasses, Decimals, datetimes)."""
    if dataclasses.is_dataclass(result) and not isinstance(result, type):
        result = dataclasses.asdict(result)
    return json.loads(json.dumps(result, default=str))


def run_job(
    task: Task,
    definition: JobDefinition,
    context: JobContext,
    payload: dict[str, Any],
    session_factory: Callable = session_scope,
) -> Any:
    """Run one job attempt inside a fresh session."""
    attempt = task.request.retries + 1
    logger.info("Running %s (attempt %d)", definition.name, attempt)
    try:
        with session_factory() as db:
            result = definition.handler(db, context, **payload)
    except Exception as exc:
        delay = next_retry_delay(exc, attempt)
        if delay is None:
            logger.error(
                "%s failed permanently on attempt %d: %s", definition.name, attempt, exc
            )
            raise
        logger.warning(
            "%s failed on attempt %d, retrying in %.0fs: %s",
            definition.name, attempt, delay, exc,
        )
        raise task.retry(exc=exc, countdown=delay)
    return to_payload(result)


def register_tasks(
    app: Celery,
    definitions: list[JobDefinition],
    context: JobContext,
) -> dict[str, Task]:
    """Register one Celery task per job definition.

    Returns:
        Mapping of task name to the registered task.
    """
    registered: dict[str, Task] = {}
    for definition in definitions:
        registered[definition.name] = _register(app, definition, context)
    logger.debug("Registered %d job tasks", len(registered))
    return registered


def _register(app: Celery, definition: JobDefinition, context: JobContext) -> Task:
    @app.task(
        name=definition.name,
        bind=True,
        max_retries=MAX_ATTEMPTS - 1,
        time_limit=definition.time_limit,
        soft_time_limit=definition.time_limit - 30,
    )
    def job_task(self, **payload):
        return run_job(self, definition, context, payload)

    return job_task
