"""Account sync service - refreshes one bank account's balances."""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from integrations.exceptions import ProviderError
from integrations.provider_protocol import ProviderBankAccount
from integrations.provider_registry import ProviderRegistry, get_provider_registry
from jobs.dispatcher import JobDispatcher
from jobs.events import UPSERT_TRANSACTIONS
from models import AccountStatus, BankAccount, ConnectionStatus
from models.utils import as_naive_utc, utc_now
from services.exceptions import AccountNotFoundError, ProviderAccountMismatchError

logger = logging.getLogger(__name__)


@dataclass
class AccountBalances:
    available: Decimal | None = None
    current: Decimal | None = None
    limit: Decimal | None = None


@dataclass
class AccountSyncResult:
    status: str  # "success" | "skipped"
    balances: AccountBalances | None = None


class AccountSyncService:
    """Pull balances for a single account and optionally queue its transactions."""

    def __init__(
        self,
        provider_registry: Optional[ProviderRegistry] = None,
        dispatcher: Optional[JobDispatcher] = None,
    ):
        self._registry = provider_registry
        self._dispatcher = dispatcher

    @property
    def registry(self) -> ProviderRegistry:
        """Get the provider registry, creating default if not provided."""
        if self._registry is None:
            self._registry = get_provider_registry()
        return self._registry

    def sync_account(
        self,
        db: Session,
        bank_account_id: str,
        manual_sync: bool = False,
        access_token: str | None = None,
        now: datetime | None = None,
    ) -> AccountSyncResult:
        """Refresh balances for one account.

        Automatic syncs never touch accounts that are not ACTIVE. A failure
        marks the account INACTIVE and the parent connection
        REQUIRES_ATTENTION before re-raising; retriable provider errors
        (rate limits, outages, network) are re-raised without touching
        status so the retry can succeed.

        Args:
            db: Database session
            bank_account_id: BankAccount to refresh
            manual_sync: User-triggered. Syncs non-ACTIVE accounts and
                queues ``upsert-transactions`` straight away.
            access_token: Token to use; defaults to the connection's.

        Raises:
            AccountNotFoundError: If the account does not exist.
            ProviderAccountMismatchError: If the provider did not return it.
        """
        account = db.get(BankAccount, bank_account_id)
        if account is None:
            raise AccountNotFoundError(bank_account_id)

        if account.status != AccountStatus.ACTIVE.value and not manual_sync:
            logger.info("Account %s is %s, skipping automatic sync", bank_account_id, account.status)
            return AccountSyncResult(status="skipped")

        connection = account.connection
        if not connection.is_syncable:
            logger.info("Connection %s is not syncable, skipping account %s", connection.id, bank_account_id)
            return AccountSyncResult(status="skipped")

        token = access_token or connection.access_token
        now = as_naive_utc(now or utc_now())

        try:
            provider = self.registry.get_provider(connection.provider)
            remote_accounts = provider.get_accounts(token)
            remote = self._find_remote(remote_accounts, account.provider_account_id)
            if remote is None:
                raise ProviderAccountMismatchError(bank_account_id, account.provider_account_id)

            account.available_balance = remote.available_balance
            account.current_balance = remote.current_balance
            account.credit_limit = remote.limit
            account.currency = remote.iso_currency_code or account.currency
            account.mask = remote.mask or account.mask
            account.status = AccountStatus.ACTIVE.value
            account.error_message = None
            account.last_synced_at = now
            connection.last_synced_at = now
            db.commit()
        except Exception as e:
            db.rollback()
            if isinstance(e, ProviderError) and e.retriable:
                logger.warning("Account %s sync hit a retriable error: %s", bank_account_id, e)
                raise
            logger.error("Account %s sync failed: %s", bank_account_id, e)
            self._record_failure(db, bank_account_id, e, now)
            raise

        if manual_sync:
            self._dispatcher.schedule(
                UPSERT_TRANSACTIONS,
                {
                    "bank_account_id": account.id,
                    "user_id": account.user_id,
                    "access_token": token,
                },
            )

        logger.info("Account %s synced", bank_account_id)
        return AccountSyncResult(
            status="success",
            balances=AccountBalances(
                available=account.available_balance,
                current=account.current_balance,
                limit=account.credit_limit,
            ),
        )

    @staticmethod
    def _find_remote(
        remote_accounts: list[ProviderBankAccount], provider_account_id: str
    ) -> ProviderBankAccount | None:
        for remote in remote_accounts:
            if remote.provider_account_id == provider_account_id:
                return remote
        return None

    @staticmethod
    def _record_failure(
        db: Session, bank_account_id: str, error: Exception, now: datetime
    ) -> None:
        """Degrade the account and its connection after a failed sync."""
        try:
            account = db.get(BankAccount, bank_account_id)
            if account is None:
                return
            account.status = AccountStatus.INACTIVE.value
            account.error_message = str(error)
            account.connection.set_status(ConnectionStatus.REQUIRES_ATTENTION, str(error), now)
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("Could not record sync failure for account %s", bank_account_id)
