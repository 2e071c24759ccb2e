"""Connection recovery service - bounded retry for failed connections.

A failed connection is re-checked with exponential backoff. Once the
attempt ceiling is reached the user is told to reconnect and no further
retries are scheduled.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from config import settings
from integrations.exceptions import ProviderError
from integrations.provider_registry import ProviderRegistry, get_provider_registry
from jobs.dispatcher import JobDispatcher
from jobs.events import CONNECTION_RECOVERY, SYNC_CONNECTION
from models import BankConnection, ConnectionStatus, UserActivity, UserActivityType
from models.utils import as_naive_utc, utc_now
from services.exceptions import ConnectionNotFoundError
from services.notification_service import NotificationService, NotificationType

logger = logging.getLogger(__name__)


def recovery_delay_minutes(retry_count: int) -> int:
    """Backoff before the next recovery attempt: 15, 30, 60 minutes..."""
    return settings.RECOVERY_BASE_DELAY_MINUTES * 2 ** retry_count


@dataclass
class RecoveryResult:
    success: bool
    recovered: bool = False
    scheduled: bool = False
    max_retries_exceeded: bool = False
    next_attempt_minutes: int | None = None
    error: str | None = None


class ConnectionRecoveryService:
    """Re-check failed connections and escalate to the user when retries run out."""

    def __init__(
        self,
        provider_registry: Optional[ProviderRegistry] = None,
        dispatcher: Optional[JobDispatcher] = None,
        notifications: Optional[NotificationService] = None,
    ):
        self._registry = provider_registry
        self._dispatcher = dispatcher
        self._notifications = notifications or NotificationService(dispatcher)

    @property
    def registry(self) -> ProviderRegistry:
        """Get the provider registry, creating default if not provided."""
        if self._registry is None:
            self._registry = get_provider_registry()
        return self._registry

    def recover_connection(
        self,
        db: Session,
        connection_id: str,
        provider: str,
        access_token: str,
        retry_count: int = 0,
        now: datetime | None = None,
    ) -> RecoveryResult:
        """Attempt to recover a connection.

        ``retry_count`` is the number of earlier attempts. A healthy check
        restores ACTIVE and queues a confirming sync. Otherwise the
        connection is kept in ERROR and, while fewer than
        RECOVERY_MAX_RETRIES attempts have been made, another attempt is
        scheduled after :func:`recovery_delay_minutes`. After the last
        attempt a single ``connection_failed`` notification is sent.

        Unexpected errors are returned as ``success=False`` rather than
        raised; the retry schedule above is the only retry mechanism.
        """
        now = as_naive_utc(now or utc_now())
        attempts = retry_count + 1

        try:
            connection = db.get(BankConnection, connection_id)
            if connection is None:
                raise ConnectionNotFoundError(connection_id)

            client = self.registry.get_provider(provider)
            try:
                item = client.get_item_details(access_token)
                healthy, error_text = item.is_healthy, item.error_message
            except ProviderError as e:
                healthy, error_text = False, str(e)

            if healthy:
                connection.set_status(ConnectionStatus.ACTIVE, None, now)
                connection.last_checked_at = now
                connection.last_accessed_at = now
                db.add(UserActivity(
                    user_id=connection.user_id,
                    type=UserActivityType.CONNECTION_RECOVERED.value,
                    detail=f"Connection to {connection.institution_name or 'your bank'} recovered",
                    activity_metadata={"connection_id": connection_id, "attempts": attempts},
                ))
                db.commit()
                self._dispatcher.schedule(
                    SYNC_CONNECTION, {"connection_id": connection_id, "manual_sync": False}
                )
                logger.info("Connection %s recovered after %d attempt(s)", connection_id, attempts)
                return RecoveryResult(success=True, recovered=True)

            connection.set_status(ConnectionStatus.ERROR, error_text, now)
            connection.last_checked_at = now
            db.commit()

            if attempts < settings.RECOVERY_MAX_RETRIES:
                delay = recovery_delay_minutes(retry_count)
                self._dispatcher.schedule(
                    CONNECTION_RECOVERY,
                    {
                        "connection_id": connection_id,
                        "provider": provider,
                        "access_token": access_token,
                        "retry_count": attempts,
                    },
                    delay_seconds=delay * 60,
                )
                logger.info(
                    "Connection %s still failing, retry %d scheduled in %d minutes",
                    connection_id, attempts, delay,
                )
                return RecoveryResult(
                    success=True, recovered=False, scheduled=True, next_attempt_minutes=delay
                )

            institution = connection.institution_name or "your bank"
            self._notifications.notify(
                connection.user_id,
                NotificationType.CONNECTION_FAILED,
                "Bank Connection Failed",
                f"We couldn't restore your connection to {institution}. "
                "Please reconnect your account to keep your data up to date.",
                {
                    "connection_id": connection_id,
                    "institution_name": connection.institution_name,
                    "attempts": attempts,
                },
            )
            logger.warning(
                "Connection %s recovery gave up after %d attempts", connection_id, attempts
            )
            return RecoveryResult(success=True, recovered=False, max_retries_exceeded=True)
        except Exception as e:
            db.rollback()
            logger.exception("Connection recovery failed for %s", connection_id)
            return RecoveryResult(success=False, error=str(e))
