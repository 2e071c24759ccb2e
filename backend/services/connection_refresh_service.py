"""Connection refresh service - rotates provider credentials."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from integrations.exceptions import ProviderAuthError, ProviderError
from integrations.provider_registry import ProviderRegistry, get_provider_registry
from jobs.dispatcher import JobDispatcher
from jobs.events import SYNC_CONNECTION
from models import BankConnection, ConnectionStatus
from models.utils import as_naive_utc, utc_now
from services.exceptions import ConnectionNotFoundError
from services.notification_service import NotificationService, NotificationType

logger = logging.getLogger(__name__)

REFRESHABLE_STATUSES: frozenset[str] = frozenset(
    {
        ConnectionStatus.ACTIVE.value,
        ConnectionStatus.ERROR.value,
        ConnectionStatus.LOGIN_REQUIRED.value,
        ConnectionStatus.REFRESH_FAILED.value,
    }
)


@dataclass
class RefreshResult:
    status: str  # "success" | "failed" | "skipped"
    error: str | None = None


class ConnectionRefreshService:
    """REFRESHING -> ACTIVE | REFRESH_FAILED."""

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

    def refresh_connection(
        self, db: Session, connection_id: str, now: datetime | None = None
    ) -> RefreshResult:
        """Exchange a connection's credentials for fresh ones.

        On success the connection is ACTIVE with the new tokens and a sync
        is queued. Auth failures mark REFRESH_FAILED and tell the user to
        reconnect; retriable failures mark REFRESH_FAILED and re-raise so
        the job is retried.

        Raises:
            ConnectionNotFoundError: If the connection does not exist.
        """
        connection = db.get(BankConnection, connection_id)
        if connection is None:
            raise ConnectionNotFoundError(connection_id)
        if connection.disabled or connection.status not in REFRESHABLE_STATUSES:
            logger.info("Connection %s is %s, not refreshing", connection_id, connection.status)
            return RefreshResult(status="skipped")

        now = as_naive_utc(now or utc_now())
        connection.set_status(ConnectionStatus.REFRESHING, connection.error_message, now)
        connection.last_refresh_attempt_at = now
        db.commit()

        try:
            provider = self.registry.get_provider(connection.provider)
            tokens = provider.refresh_access_token(
                connection.access_token, connection.refresh_token
            )
        except ProviderError as e:
            connection.set_status(ConnectionStatus.REFRESH_FAILED, str(e), now)
            db.commit()
            logger.warning("Token refresh failed for connection %s: %s", connection_id, e.code.value)

            if isinstance(e, ProviderAuthError):
                institution = connection.institution_name or "your bank"
                self._notifications.notify(
                    connection.user_id,
                    NotificationType.CONNECTION_REFRESH_FAILED,
                    "Bank Connection Needs Attention",
                    f"We couldn't refresh your connection to {institution}. "
                    "Please reconnect your account.",
                    {"connection_id": connection_id, "institution_name": connection.institution_name},
                )
            if e.retriable:
                raise
            return RefreshResult(status="failed", error=str(e))
        except Exception as e:
            db.rollback()
            connection.set_status(ConnectionStatus.REFRESH_FAILED, str(e), now)
            db.commit()
            logger.exception("Token refresh crashed for connection %s", connection_id)
            raise

        connection.access_token = tokens.access_token
        if tokens.refresh_token:
            connection.refresh_token = tokens.refresh_token
        connection.expires_at = as_naive_utc(tokens.expires_at)
        connection.last_refresh_success_at = now
        connection.set_status(ConnectionStatus.ACTIVE, None, now)
        db.commit()

        self._dispatcher.schedule(
            SYNC_CONNECTION, {"connection_id": connection_id, "manual_sync": False}
        )
        logger.info("Connection %s credentials refreshed", connection_id)
        return RefreshResult(status="success")
