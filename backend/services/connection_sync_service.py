"""Connection sync service - checks connection health and fans out account syncs."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from config import settings
from integrations.exceptions import ProviderAuthError
from integrations.provider_registry import ProviderRegistry, get_provider_registry
from jobs.dispatcher import JobDispatcher
from jobs.events import SYNC_ACCOUNT, TRANSACTION_NOTIFICATIONS
from models import AccountStatus, BankAccount, BankConnection, ConnectionStatus
from models.utils import as_naive_utc, utc_now
from services.exceptions import ConnectionNotFoundError

logger = logging.getLogger(__name__)


@dataclass
class ConnectionSyncResult:
    status: str  # "success" | "error" | "skipped"
    accounts_synced: int = 0
    error: str | None = None


class ConnectionSyncService:
    """Verify a connection with its provider and dispatch per-account syncs."""

    def __init__(
        self,
        provider_registry: Optional[ProviderRegistry] = None,
        dispatcher: Optional[JobDispatcher] = None,
    ):
        """Initialize with injected dependencies.

        Args:
            provider_registry: Registry of configured providers. If None,
                              a default registry will be created on first use.
            dispatcher: Where follow-up jobs are scheduled.
        """
        self._registry = provider_registry
        self._dispatcher = dispatcher

    @property
    def registry(self) -> ProviderRegistry:
        """Get the provider registry, creating default if not provided."""
        if self._registry is None:
            self._registry = get_provider_registry()
        return self._registry

    def sync_connection(
        self,
        db: Session,
        connection_id: str,
        manual_sync: bool = False,
        now: datetime | None = None,
    ) -> ConnectionSyncResult:
        """Check provider health for a connection and fan out account syncs.

        Healthy connections become ACTIVE and each eligible account gets a
        ``sync-account`` job, spaced out to stay under provider rate
        limits. An item-level provider error is recorded (LOGIN_REQUIRED or
        ERROR) and returned without fan-out. Any exception is recorded as
        the connection's error and re-raised for the job retry policy.

        Args:
            db: Database session
            connection_id: BankConnection to sync
            manual_sync: User-triggered sync. Includes non-ACTIVE accounts,
                uses tighter spacing and schedules a transaction summary.

        Raises:
            ConnectionNotFoundError: If the connection does not exist.
        """
        connection = db.get(BankConnection, connection_id)
        if connection is None:
            raise ConnectionNotFoundError(connection_id)

        if not connection.is_syncable:
            logger.info("Connection %s is %s/disabled, skipping sync", connection_id, connection.status)
            return ConnectionSyncResult(status="skipped")

        now = as_naive_utc(now or utc_now())
        logger.info("Starting connection sync for %s (manual=%s)", connection_id, manual_sync)

        try:
            provider = self.registry.get_provider(connection.provider)
            item = provider.get_item_details(connection.access_token)

            if not item.is_healthy:
                status = (
                    ConnectionStatus.LOGIN_REQUIRED
                    if item.login_required
                    else ConnectionStatus.ERROR
                )
                logger.warning(
                    "Connection %s reported %s", connection_id, item.error_code.value
                )
                connection.set_status(status, item.error_message, now)
                connection.last_checked_at = now
                db.commit()
                return ConnectionSyncResult(status="error", error=item.error_message)

            connection.set_status(ConnectionStatus.ACTIVE, None, now)
            connection.last_checked_at = now
            connection.last_accessed_at = now
            db.commit()

            accounts = self._accounts_to_sync(db, connection_id, manual_sync)
            if not accounts:
                logger.info("No accounts to sync for connection %s", connection_id)
                return ConnectionSyncResult(status="success", accounts_synced=0)

            step = (
                settings.MANUAL_SYNC_ACCOUNT_DELAY_SECONDS
                if manual_sync
                else settings.AUTO_SYNC_ACCOUNT_DELAY_SECONDS
            )
            for index, account in enumerate(accounts):
                self._dispatcher.schedule(
                    SYNC_ACCOUNT,
                    {
                        "bank_account_id": account.id,
                        "access_token": connection.access_token,
                        "manual_sync": manual_sync,
                        "user_id": connection.user_id,
                    },
                    delay_seconds=index * step,
                )

            if manual_sync:
                self._dispatcher.schedule(
                    TRANSACTION_NOTIFICATIONS,
                    {"user_id": connection.user_id},
                    delay_seconds=settings.TRANSACTION_NOTIFICATION_DELAY_SECONDS,
                )
        except Exception as e:
            db.rollback()
            logger.error("Connection sync failed for %s: %s", connection_id, e)
            self._record_failure(db, connection_id, e, now)
            raise

        logger.info(
            "Connection sync completed for %s, dispatched %d account syncs",
            connection_id, len(accounts),
        )
        return ConnectionSyncResult(status="success", accounts_synced=len(accounts))

    @staticmethod
    def _accounts_to_sync(
        db: Session, connection_id: str, manual_sync: bool
    ) -> list[BankAccount]:
        """Enabled accounts; automatic syncs only take ACTIVE ones."""
        query = db.query(BankAccount).filter(
            BankAccount.bank_connection_id == connection_id,
            BankAccount.enabled.is_(True),
        )
        if not manual_sync:
            query = query.filter(BankAccount.status == AccountStatus.ACTIVE.value)
        return query.order_by(BankAccount.created_at, BankAccount.id).all()

    @staticmethod
    def _record_failure(
        db: Session, connection_id: str, error: Exception, now: datetime
    ) -> None:
        """Persist the failure on the connection after the work was rolled back."""
        status = (
            ConnectionStatus.LOGIN_REQUIRED
            if isinstance(error, ProviderAuthError) and error.login_required
            else ConnectionStatus.ERROR
        )
        try:
            connection = db.get(BankConnection, connection_id)
            if connection is None:
                return
            connection.set_status(status, str(error), now)
            connection.last_checked_at = now
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("Could not record sync failure for connection %s", connection_id)
