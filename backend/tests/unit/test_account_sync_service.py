"""Tests for AccountSyncService."""

from decimal import Decimal

import pytest

from integrations.exceptions import ProviderAuthError, ProviderRateLimitError
from jobs.events import UPSERT_TRANSACTIONS
from models import AccountStatus, ConnectionStatus
from services.account_sync_service import AccountSyncService
from services.exceptions import AccountNotFoundError, ProviderAccountMismatchError
from tests.fixtures import NOW, create_account, create_connection
from tests.fixtures.mocks import (
    MockBankingProvider,
    MockProviderRegistry,
    SAMPLE_PROVIDER_ACCOUNTS,
    unavailable_error,
)


def _service(provider, dispatcher) -> AccountSyncService:
    return AccountSyncService(
        provider_registry=MockProviderRegistry({"plaid": provider}),
        dispatcher=dispatcher,
    )


class TestSyncAccount:
    def test_updates_balances(self, db, account, dispatcher):
        service = _service(MockBankingProvider(accounts=SAMPLE_PROVIDER_ACCOUNTS), dispatcher)

        result = service.sync_account(db, account.id, now=NOW)

        assert result.status == "success"
        assert result.balances.available == Decimal("1200.50")
        assert result.balances.current == Decimal("1250.75")
        db.refresh(account)
        assert account.available_balance == Decimal("1200.50")
        assert account.current_balance == Decimal("1250.75")
        assert account.currency == "USD"
        assert account.mask == "0001"
        assert account.last_synced_at == NOW
        assert account.connection.last_synced_at == NOW

    def test_credit_limit_is_stored(self, db, connection, dispatcher):
        card = create_account(db, connection, provider_account_id="acc_credit", name="Rewards Card")
        service = _service(MockBankingProvider(accounts=SAMPLE_PROVIDER_ACCOUNTS), dispatcher)

        result = service.sync_account(db, card.id, now=NOW)

        assert result.balances.limit == Decimal("5000.00")

    def test_uses_passed_access_token(self, db, account, dispatcher):
        provider = MockBankingProvider(accounts=SAMPLE_PROVIDER_ACCOUNTS)
        service = _service(provider, dispatcher)

        service.sync_account(db, account.id, access_token="access-override", now=NOW)

        assert provider.calls == [("get_accounts", "access-override")]

    def test_automatic_sync_does_not_queue_transactions(self, db, account, dispatcher):
        service = _service(MockBankingProvider(accounts=SAMPLE_PROVIDER_ACCOUNTS), dispatcher)

        service.sync_account(db, account.id, now=NOW)

        assert dispatcher.events == []

    def test_manual_sync_queues_transaction_upsert(self, db, account, dispatcher):
        service = _service(MockBankingProvider(accounts=SAMPLE_PROVIDER_ACCOUNTS), dispatcher)

        service.sync_account(db, account.id, manual_sync=True, now=NOW)

        assert dispatcher.of(UPSERT_TRANSACTIONS) == [
            (
                UPSERT_TRANSACTIONS,
                {
                    "bank_account_id": account.id,
                    "user_id": account.user_id,
                    "access_token": "access-sandbox-123",
                },
                0,
            )
        ]

    def test_inactive_account_skipped_on_automatic_sync(self, db, connection, dispatcher):
        inactive = create_account(db, connection, status=AccountStatus.INACTIVE)
        provider = MockBankingProvider(accounts=SAMPLE_PROVIDER_ACCOUNTS)
        service = _service(provider, dispatcher)

        result = service.sync_account(db, inactive.id, now=NOW)

        assert result.status == "skipped"
        assert provider.calls == []

    def test_inactive_account_reactivated_on_manual_sync(self, db, connection, dispatcher):
        inactive = create_account(
            db, connection, status=AccountStatus.INACTIVE, error_message="old"
        )
        service = _service(MockBankingProvider(accounts=SAMPLE_PROVIDER_ACCOUNTS), dispatcher)

        result = service.sync_account(db, inactive.id, manual_sync=True, now=NOW)

        assert result.status == "success"
        db.refresh(inactive)
        assert inactive.status == AccountStatus.ACTIVE.value
        assert inactive.error_message is None

    def test_disabled_connection_skipped(self, db, user, dispatcher):
        connection = create_connection(db, user, disabled=True)
        account = create_account(db, connection)
        service = _service(MockBankingProvider(accounts=SAMPLE_PROVIDER_ACCOUNTS), dispatcher)

        result = service.sync_account(db, account.id, manual_sync=True, now=NOW)

        assert result.status == "skipped"

    def test_missing_remote_account_degrades_status(self, db, connection, dispatcher):
        orphan = create_account(db, connection, provider_account_id="acc_closed")
        service = _service(MockBankingProvider(accounts=SAMPLE_PROVIDER_ACCOUNTS), dispatcher)

        with pytest.raises(ProviderAccountMismatchError):
            service.sync_account(db, orphan.id, now=NOW)

        db.refresh(orphan)
        db.refresh(connection)
        assert orphan.status == AccountStatus.INACTIVE.value
        assert "acc_closed" in orphan.error_message
        assert connection.status == ConnectionStatus.REQUIRES_ATTENTION.value

    def test_auth_error_degrades_status(self, db, account, dispatcher):
        provider = MockBankingProvider(
            accounts_error=ProviderAuthError("bad token", provider_name="plaid")
        )
        service = _service(provider, dispatcher)

        with pytest.raises(ProviderAuthError):
            service.sync_account(db, account.id, now=NOW)

        db.refresh(account)
        assert account.status == AccountStatus.INACTIVE.value
        assert account.connection.status == ConnectionStatus.REQUIRES_ATTENTION.value

    @pytest.mark.parametrize(
        "error",
        [
            ProviderRateLimitError("slow down", provider_name="plaid"),
            unavailable_error(),
        ],
    )
    def test_retriable_errors_leave_status_alone(self, db, account, dispatcher, error):
        service = _service(MockBankingProvider(accounts_error=error), dispatcher)

        with pytest.raises(type(error)):
            service.sync_account(db, account.id, now=NOW)

        db.refresh(account)
        assert account.status == AccountStatus.ACTIVE.value
        assert account.connection.status == ConnectionStatus.ACTIVE.value

    def test_missing_account_raises(self, db, dispatcher):
        service = _service(MockBankingProvider(), dispatcher)

        with pytest.raises(AccountNotFoundError):
            service.sync_account(db, "nope")
