"""BankAccount model - one financial account under a bank connection."""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class AccountStatus(str, Enum):
    """Per-account sync state."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    DISCONNECTED = "DISCONNECTED"


class BankAccount(Base):
    """A checking, savings or credit account reported by a provider.

    The combination of bank_connection_id + provider_account_id uniquely
    identifies an account.
    """

    __tablename__ = "bank_accounts"
    __table_args__ = (
        UniqueConstraint(
            "bank_connection_id", "provider_account_id", name="uix_connection_provider_account"
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    bank_connection_id = Column(
        String(36), ForeignKey("bank_connections.id"), index=True, nullable=False
    )
    user_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=False)
    provider_account_id = Column(String, nullable=False)  # Provider's account ID
    name = Column(String, nullable=False)
    official_name = Column(String, nullable=True)
    type = Column(String, nullable=True)  # e.g., "depository", "credit"
    subtype = Column(String, nullable=True)  # e.g., "checking", "savings"
    available_balance = Column(Numeric(18, 4), nullable=True)
    current_balance = Column(Numeric(18, 4), nullable=True)
    credit_limit = Column(Numeric(18, 4), nullable=True)
    currency = Column(String, nullable=True)
    mask = Column(String, nullable=True)  # Last four digits
    status = Column(String, nullable=False, default=AccountStatus.ACTIVE.value)
    enabled = Column(Boolean, default=True, nullable=False)
    error_message = Column(Text, nullable=True)
    last_synced_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    connection = relationship("BankConnection", back_populates="accounts")
    transactions = relationship("Transaction", back_populates="bank_account")
