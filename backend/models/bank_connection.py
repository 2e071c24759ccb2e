"""BankConnection model - one linked financial institution for one user."""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from database import Base
from models.utils import as_naive_utc, generate_uuid, utc_now
from services.exceptions import InvalidStatusTransitionError


class BankProvider(str, Enum):
    """Banking data providers a connection can be linked through."""

    PLAID = "plaid"
    TELLER = "teller"
    GOCARDLESS = "gocardless"
    STRIPE = "stripe"


class ConnectionStatus(str, Enum):
    """Connection health states."""

    ACTIVE = "ACTIVE"
    ERROR = "ERROR"
    LOGIN_REQUIRED = "LOGIN_REQUIRED"
    REQUIRES_REAUTH = "REQUIRES_REAUTH"
    REQUIRES_ATTENTION = "REQUIRES_ATTENTION"
    REFRESHING = "REFRESHING"
    REFRESH_FAILED = "REFRESH_FAILED"
    DISCONNECTED = "DISCONNECTED"


# Statuses the disconnected sweep notifies about and may auto-disable.
UNHEALTHY_STATUSES: tuple[str, ...] = (
    ConnectionStatus.ERROR.value,
    ConnectionStatus.LOGIN_REQUIRED.value,
    ConnectionStatus.REQUIRES_ATTENTION.value,
)


class BankConnection(Base):
    """A credential set linking one user to one financial institution.

    Status changes must go through :meth:`set_status` so that
    ``last_status_changed_at`` stays accurate; the disconnected sweep uses
    it to decide when a broken connection has been abandoned.
    """

    __tablename__ = "bank_connections"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=False)
    provider = Column(String, nullable=False, default=BankProvider.PLAID.value)
    access_token = Column(String, nullable=False)
    refresh_token = Column(String, nullable=True)
    status = Column(String, nullable=False, default=ConnectionStatus.ACTIVE.value, index=True)
    institution_id = Column(String, nullable=True)
    institution_name = Column(String, nullable=True)
    error_message = Column(Text, nullable=True)
    disabled = Column(Boolean, default=False, nullable=False)

    # Timestamps
    last_accessed_at = Column(DateTime, nullable=True)
    last_checked_at = Column(DateTime, nullable=True)
    last_synced_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    last_notified_at = Column(DateTime, nullable=True)
    last_expiry_notified_at = Column(DateTime, nullable=True)
    last_alerted_at = Column(DateTime, nullable=True)
    last_status_changed_at = Column(DateTime, nullable=True)
    last_refresh_attempt_at = Column(DateTime, nullable=True)
    last_refresh_success_at = Column(DateTime, nullable=True)

    # Counters
    notification_count = Column(Integer, default=0, nullable=False)
    expiry_notification_count = Column(Integer, default=0, nullable=False)
    alert_count = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    accounts = relationship("BankAccount", back_populates="connection")

    @property
    def is_syncable(self) -> bool:
        """Whether sync jobs may run against this connection."""
        return not self.disabled and self.status != ConnectionStatus.DISCONNECTED.value

    def set_status(
        self,
        status: ConnectionStatus | str,
        error_message: str | None = None,
        now: datetime | None = None,
    ) -> None:
        """Move the connection to ``status`` and record the error message.

        DISCONNECTED is terminal: leaving it needs a fresh reconnect flow,
        which creates a new connection record.

        Raises:
            InvalidStatusTransitionError: If the connection is DISCONNECTED.
        """
        new_status = ConnectionStatus(status).value
        if (
            self.status == ConnectionStatus.DISCONNECTED.value
            and new_status != ConnectionStatus.DISCONNECTED.value
        ):
            raise InvalidStatusTransitionError(self.status, new_status)

        if self.status != new_status:
            self.last_status_changed_at = as_naive_utc(now or utc_now())
        self.status = new_status
        self.error_message = error_message
