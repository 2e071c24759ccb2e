"""Centralized logging configuration."""

import logging

from config import settings

NOISY_LOGGERS: tuple[str, ...] = (
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "celery.app.trace",
    "kombu",
    "amqp",
    "urllib3",
    "httpx",
    "httpcore",
)


def setup_logging() -> None:
    """Configure logging for the API process and Celery workers.

    Sets root logger level from settings.LOG_LEVEL and suppresses
    noisy third-party loggers to WARNING.
    """
    logging.basicConfig(
        format="%(asctime)s %(levelname)-8s %(name)s  %(message)s",
        datefmt="%H:%M:%S",
        level=getattr(logging, settings.LOG_LEVEL),
        force=True,
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
