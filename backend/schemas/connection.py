"""Pydantic schemas for bank connection API responses.

Tokens are never part of a response.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict


class BankAccountResponse(BaseModel):
    """Schema for BankAccount API response."""

    id: str
    name: str
    official_name: Optional[str] = None
    type: Optional[str] = None
    subtype: Optional[str] = None
    mask: Optional[str] = None
    currency: Optional[str] = None
    available_balance: Optional[Decimal] = None
    current_balance: Optional[Decimal] = None
    credit_limit: Optional[Decimal] = None
    status: str
    enabled: bool
    last_synced_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ConnectionResponse(BaseModel):
    """Schema for BankConnection API response."""

    id: str
    user_id: str
    provider: str
    status: str
    institution_id: Optional[str] = None
    institution_name: Optional[str] = None
    disabled: bool
    last_accessed_at: Optional[datetime] = None
    last_checked_at: Optional[datetime] = None
    last_synced_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    last_status_changed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ConnectionDetailResponse(ConnectionResponse):
    """Connection with its accounts."""

    accounts: list[BankAccountResponse] = []


class ConnectionSyncResponse(BaseModel):
    """Outcome of a synchronous connection check."""

    connection_id: str
    status: str
    accounts_synced: int = 0


class JobQueuedResponse(BaseModel):
    """A background job was queued."""

    connection_id: str
    job: str
    status: str = "queued"
