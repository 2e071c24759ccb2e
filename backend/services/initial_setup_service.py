"""Initial setup service - turns a freshly linked access token into records."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from config import settings
from integrations.provider_registry import ProviderRegistry, get_provider_registry
from jobs.dispatcher import JobDispatcher
from jobs.events import SYNC_CONNECTION
from models import (
    AccountStatus,
    BankAccount,
    BankConnection,
    ConnectionStatus,
    User,
    UserActivity,
    UserActivityType,
)
from models.utils import as_naive_utc, utc_now
from services.exceptions import UserNotFoundError

logger = logging.getLogger(__name__)


@dataclass
class InitialSetupResult:
    status: str  # "success"
    connection_id: str
    account_count: int = 0
    created_accounts: int = 0


class InitialSetupService:
    """Create the connection and its accounts, then start the first syncs."""

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

    def setup_connection(
        self,
        db: Session,
        user_id: str,
        provider: str,
        access_token: str,
        institution_id: str | None = None,
        institution_name: str | None = None,
        now: datetime | None = None,
    ) -> InitialSetupResult:
        """Record a newly linked connection.

        The provider's accounts are fetched before anything is written, so
        a provider failure leaves no half-built connection behind. Re-running
        with the same access token reuses the existing connection and only
        adds accounts it does not have yet, which keeps job retries safe.

        A manual ``sync-connection`` is queued straight away and a second
        one after INITIAL_SETUP_FOLLOWUP_SYNC_DELAY_SECONDS to pick up
        transactions the provider had not prepared at link time.

        Raises:
            UserNotFoundError: If the user does not exist.
        """
        if db.get(User, user_id) is None:
            raise UserNotFoundError(user_id)

        now = as_naive_utc(now or utc_now())
        client = self.registry.get_provider(provider)
        remote_accounts = client.get_accounts(access_token)

        connection = (
            db.query(BankConnection)
            .filter(
                BankConnection.user_id == user_id,
                BankConnection.provider == provider,
                BankConnection.access_token == access_token,
            )
            .first()
        )
        is_new = connection is None
        if is_new:
            connection = BankConnection(
                user_id=user_id,
                provider=provider,
                access_token=access_token,
                status=ConnectionStatus.ACTIVE.value,
                institution_id=institution_id,
                institution_name=institution_name,
                last_accessed_at=now,
                last_checked_at=now,
                last_status_changed_at=now,
            )
            db.add(connection)
            db.flush()

        known = {
            account.provider_account_id
            for account in db.query(BankAccount).filter(
                BankAccount.bank_connection_id == connection.id
            )
        }
        created = 0
        for remote in remote_accounts:
            if remote.provider_account_id in known:
                continue
            known.add(remote.provider_account_id)
            db.add(BankAccount(
                bank_connection_id=connection.id,
                user_id=user_id,
                provider_account_id=remote.provider_account_id,
                name=remote.name,
                official_name=remote.official_name,
                type=remote.type,
                subtype=remote.subtype,
                available_balance=remote.available_balance,
                current_balance=remote.current_balance,
                credit_limit=remote.limit,
                currency=remote.iso_currency_code,
                mask=remote.mask,
                status=AccountStatus.ACTIVE.value,
                enabled=True,
            ))
            created += 1

        if is_new:
            db.add(UserActivity(
                user_id=user_id,
                type=UserActivityType.CONNECTION_CREATED.value,
                detail=f"Connected {institution_name or 'bank'}",
                activity_metadata={"connection_id": connection.id, "account_count": created},
            ))

        try:
            db.commit()
        except Exception:
            db.rollback()
            raise

        payload = {"connection_id": connection.id, "manual_sync": True}
        self._dispatcher.schedule(SYNC_CONNECTION, payload)
        self._dispatcher.schedule(
            SYNC_CONNECTION,
            payload,
            delay_seconds=settings.INITIAL_SETUP_FOLLOWUP_SYNC_DELAY_SECONDS,
        )

        logger.info(
            "Initial setup of connection %s: %d accounts (%d new)",
            connection.id, len(known), created,
        )
        return InitialSetupResult(
            status="success",
            connection_id=connection.id,
            account_count=len(known),
            created_accounts=created,
        )
