"""Job dispatch contract.

Services never talk to Celery directly: they receive a JobDispatcher and
call ``schedule(event, payload, delay_seconds)``. The worker and the API
inject a CeleryDispatcher; tests inject a recording fake.
"""

import logging
from typing import Any, Protocol

from celery import Celery

logger = logging.getLogger(__name__)


class JobDispatcher(Protocol):
    """Anything that can enqueue a named job, optionally delayed."""

    def schedule(self, event: str, payload: dict[str, Any], delay_seconds: int = 0) -> None:
        ...


class CeleryDispatcher:
    """Enqueue jobs on a Celery broker by task name.

    ``send_task`` is used instead of importing task objects so the API
    process can dispatch without loading worker code.
    """

    def __init__(self, app: Celery):
        self._app = app

    def schedule(self, event: str, payload: dict[str, Any], delay_seconds: int = 0) -> None:
        countdown = max(0, int(delay_seconds))
        self._app.send_task(event, kwargs=payload, countdown=countdown or None)
        logger.debug("Dispatched %s (delay=%ss)", event, countdown)
