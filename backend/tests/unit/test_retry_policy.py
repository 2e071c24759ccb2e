"""Tests for the job retry policy."""

import pytest
from sqlalchemy.exc import OperationalError

from integrations.exceptions import (
    ProviderAPIError,
    ProviderAuthError,
    ProviderConnectionError,
    ProviderRateLimitError,
)
from integrations.provider_protocol import ProviderErrorCode
from jobs.retry_policy import (
    MAX_ATTEMPTS,
    MAX_DELAY_SECONDS,
    PERSISTENCE_DELAY_SECONDS,
    PROVIDER_UNAVAILABLE_DELAY_SECONDS,
    RATE_LIMIT_DELAY_SECONDS,
    backoff_delay,
    next_retry_delay,
)
from services.exceptions import ConnectionNotFoundError, ProviderNotConfiguredError


class TestBackoffDelay:
    @pytest.mark.parametrize("attempt,expected", [(1, 1), (2, 2), (3, 4), (4, 8), (6, 32)])
    def test_doubles_per_attempt(self, attempt, expected):
        assert backoff_delay(attempt, randomize=False) == expected

    def test_capped_at_maximum(self):
        assert backoff_delay(10, randomize=False) == MAX_DELAY_SECONDS

    def test_jitter_stays_within_bounds(self):
        for _ in range(50):
            delay = backoff_delay(3)
            assert 4 <= delay < 8


class TestNextRetryDelay:
    def test_gives_up_after_max_attempts(self):
        assert next_retry_delay(RuntimeError("boom"), MAX_ATTEMPTS) is None

    def test_auth_errors_are_permanent(self):
        exc = ProviderAuthError("login", code=ProviderErrorCode.LOGIN_REQUIRED)
        assert next_retry_delay(exc, 1) is None

    def test_domain_errors_are_permanent(self):
        assert next_retry_delay(ConnectionNotFoundError("missing"), 1) is None

    def test_rate_limit_waits_five_minutes(self):
        assert next_retry_delay(ProviderRateLimitError("slow"), 1) == RATE_LIMIT_DELAY_SECONDS
        assert RATE_LIMIT_DELAY_SECONDS == 300

    def test_provider_unavailable_waits_ten_minutes(self):
        exc = ProviderAPIError(
            "down", status_code=400, code=ProviderErrorCode.PROVIDER_UNAVAILABLE
        )
        assert next_retry_delay(exc, 2) == PROVIDER_UNAVAILABLE_DELAY_SECONDS
        assert PROVIDER_UNAVAILABLE_DELAY_SECONDS == 600

    def test_database_errors_wait_a_minute(self):
        exc = OperationalError("SELECT 1", {}, Exception("database is locked"))
        assert next_retry_delay(exc, 1) == PERSISTENCE_DELAY_SECONDS

    def test_other_errors_use_backoff(self):
        assert next_retry_delay(ProviderConnectionError("timeout"), 3, randomize=False) == 4
        assert next_retry_delay(ValueError("bad"), 1, randomize=False) == 1

    def test_unconfigured_provider_is_permanent(self):
        assert next_retry_delay(ProviderNotConfiguredError("teller"), 1) is None
