"""Tests for ConnectionRefreshService."""

from datetime import datetime, timezone

import pytest

from integrations.exceptions import ProviderAuthError, ProviderConnectionError
from integrations.provider_protocol import ProviderErrorCode, TokenRefreshResult
from jobs.events import SYNC_CONNECTION
from models import ConnectionStatus
from services.connection_refresh_service import ConnectionRefreshService
from services.exceptions import ConnectionNotFoundError
from tests.fixtures import NOW, create_connection
from tests.fixtures.mocks import MockBankingProvider, MockProviderRegistry


def _service(provider, dispatcher) -> ConnectionRefreshService:
    return ConnectionRefreshService(
        provider_registry=MockProviderRegistry({"plaid": provider}),
        dispatcher=dispatcher,
    )


class TestRefreshConnection:
    def test_success_rotates_tokens(self, db, user, dispatcher):
        connection = create_connection(db, user, refresh_token="refresh-old")
        expires = datetime(2026, 11, 14, 12, 0, tzinfo=timezone.utc)
        provider = MockBankingProvider(
            refresh_result=TokenRefreshResult(
                access_token="access-new", refresh_token="refresh-new", expires_at=expires
            )
        )

        result = _service(provider, dispatcher).refresh_connection(db, connection.id, now=NOW)

        assert result.status == "success"
        db.refresh(connection)
        assert connection.access_token == "access-new"
        assert connection.refresh_token == "refresh-new"
        assert connection.expires_at == datetime(2026, 11, 14, 12, 0)
        assert connection.status == ConnectionStatus.ACTIVE.value
        assert connection.last_refresh_attempt_at == NOW
        assert connection.last_refresh_success_at == NOW
        assert dispatcher.of(SYNC_CONNECTION)[0][1]["connection_id"] == connection.id

    def test_missing_refresh_token_keeps_old_one(self, db, user, dispatcher):
        connection = create_connection(db, user, refresh_token="refresh-old")
        provider = MockBankingProvider(
            refresh_result=TokenRefreshResult(access_token="access-new")
        )

        _service(provider, dispatcher).refresh_connection(db, connection.id, now=NOW)

        db.refresh(connection)
        assert connection.refresh_token == "refresh-old"

    def test_refresh_failed_connection_can_be_retried(self, db, user, dispatcher):
        connection = create_connection(db, user, status=ConnectionStatus.REFRESH_FAILED)

        result = _service(MockBankingProvider(), dispatcher).refresh_connection(
            db, connection.id, now=NOW
        )

        assert result.status == "success"

    def test_auth_failure_marks_failed_and_notifies(self, db, user, dispatcher):
        connection = create_connection(db, user)
        provider = MockBankingProvider(
            refresh_error=ProviderAuthError(
                "refresh token expired",
                provider_name="plaid",
                code=ProviderErrorCode.REFRESH_TOKEN_EXPIRED,
            )
        )

        result = _service(provider, dispatcher).refresh_connection(db, connection.id, now=NOW)

        assert result.status == "failed"
        db.refresh(connection)
        assert connection.status == ConnectionStatus.REFRESH_FAILED.value
        assert connection.access_token == "access-sandbox-123"
        [notice] = dispatcher.notifications("connection_refresh_failed")
        assert notice["data"]["connection_id"] == connection.id
        assert dispatcher.of(SYNC_CONNECTION) == []

    def test_retriable_failure_marks_failed_and_reraises(self, db, user, dispatcher):
        connection = create_connection(db, user)
        provider = MockBankingProvider(
            refresh_error=ProviderConnectionError("timeout", provider_name="plaid")
        )

        with pytest.raises(ProviderConnectionError):
            _service(provider, dispatcher).refresh_connection(db, connection.id, now=NOW)

        db.refresh(connection)
        assert connection.status == ConnectionStatus.REFRESH_FAILED.value
        assert dispatcher.notifications() == []

    def test_unexpected_failure_does_not_leave_refreshing(self, db, user, dispatcher):
        connection = create_connection(db, user)
        provider = MockBankingProvider(refresh_error=RuntimeError("boom"))

        with pytest.raises(RuntimeError):
            _service(provider, dispatcher).refresh_connection(db, connection.id, now=NOW)

        db.refresh(connection)
        assert connection.status == ConnectionStatus.REFRESH_FAILED.value

    @pytest.mark.parametrize(
        "status",
        [ConnectionStatus.DISCONNECTED, ConnectionStatus.REFRESHING, ConnectionStatus.REQUIRES_REAUTH],
    )
    def test_non_refreshable_status_skipped(self, db, user, dispatcher, status):
        connection = create_connection(db, user, status=status)
        provider = MockBankingProvider()

        result = _service(provider, dispatcher).refresh_connection(db, connection.id, now=NOW)

        assert result.status == "skipped"
        assert provider.calls == []

    def test_missing_connection_raises(self, db, dispatcher):
        with pytest.raises(ConnectionNotFoundError):
            _service(MockBankingProvider(), dispatcher).refresh_connection(db, "nope")
