"""Transaction model - one financial movement on a bank account."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Numeric, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class Transaction(Base):
    """A bank transaction reported by a provider.

    Rows are upserted by provider_transaction_id and never deleted.
    Amounts keep the provider sign convention: positive is money leaving
    the account (expense), negative is money coming in (income).
    """

    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    bank_account_id = Column(
        String(36), ForeignKey("bank_accounts.id"), index=True, nullable=False
    )
    user_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=False)
    provider_transaction_id = Column(String, unique=True, index=True, nullable=False)
    amount = Column(Numeric(18, 4), nullable=False)
    currency = Column(String, nullable=True)
    date = Column(Date, nullable=False)
    name = Column(String, nullable=False)
    merchant_name = Column(String, nullable=True)
    category = Column(String, nullable=True)  # Filled by categorization when unmapped
    subcategory = Column(String, nullable=True)
    pending = Column(Boolean, default=False, nullable=False)
    recurrence_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    bank_account = relationship("BankAccount", back_populates="transactions")
