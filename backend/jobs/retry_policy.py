"""Retry policy shared by every job.

Celery's own ``autoretry_for`` cannot vary the delay by error type, so
tasks ask :func:`next_retry_delay` what to do when their handler raises.
"""

import random

from sqlalchemy.exc import SQLAlchemyError

from integrations.exceptions import ProviderAuthError, ProviderError, ProviderRateLimitError
from integrations.provider_protocol import ProviderErrorCode
from services.exceptions import BankSyncError

MAX_ATTEMPTS = 5
BACKOFF_FACTOR = 2
MIN_DELAY_SECONDS = 1
MAX_DELAY_SECONDS = 60

RATE_LIMIT_DELAY_SECONDS = 5 * 60
PROVIDER_UNAVAILABLE_DELAY_SECONDS = 10 * 60
PERSISTENCE_DELAY_SECONDS = 60


def backoff_delay(attempt: int, randomize: bool = True) -> float:
    """Exponential backoff for the given 1-based attempt, capped at the maximum.

    With ``randomize`` the base delay is scaled by a factor in [1, 2).
    """
    delay = MIN_DELAY_SECONDS * BACKOFF_FACTOR ** max(0, attempt - 1)
    if randomize:
        delay *= 1 + random.random()
    return min(MAX_DELAY_SECONDS, delay)


def next_retry_delay(exc: BaseException, attempt: int, randomize: bool = True) -> float | None:
    """Seconds to wait before retrying after ``exc``, or None to give up.

    Args:
        exc: The exception raised by the job handler.
        attempt: How many attempts have run so far (1 after the first failure).
        randomize: Apply jitter to the exponential backoff.
    """
    if attempt >= MAX_ATTEMPTS:
        return None

    # Expired credentials and missing records do not fix themselves
    if isinstance(exc, (ProviderAuthError, BankSyncError)):
        return None

    if isinstance(exc, ProviderRateLimitError):
        return RATE_LIMIT_DELAY_SECONDS
    if isinstance(exc, ProviderError) and exc.code == ProviderErrorCode.PROVIDER_UNAVAILABLE:
        return PROVIDER_UNAVAILABLE_DELAY_SECONDS
    if isinstance(exc, SQLAlchemyError):
        return PERSISTENCE_DELAY_SECONDS

    return backoff_delay(attempt, randomize)
