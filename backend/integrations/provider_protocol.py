"""Provider protocol definitions for banking data providers.

This module defines the common interface that banking providers
(Plaid, Teller, GoCardless) must implement to work with the sync jobs,
plus the normalized records they return.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from models import BankAccount, BankConnection


class ProviderErrorCode(str, Enum):
    """Provider-independent error codes.

    Provider clients translate their own error identifiers into these so
    the services can switch on a tag instead of inspecting messages.
    """

    LOGIN_REQUIRED = "login_required"
    INVALID_TOKEN = "invalid_token"
    INVALID_REFRESH_TOKEN = "invalid_refresh_token"
    REFRESH_TOKEN_EXPIRED = "refresh_token_expired"
    RATE_LIMITED = "rate_limited"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    NETWORK = "network"
    INVALID_RESPONSE = "invalid_response"
    UNKNOWN = "unknown"


@dataclass
class ItemStatus:
    """Health of a provider-side connection (a Plaid "Item")."""

    item_id: str | None = None
    institution_id: str | None = None
    error_code: ProviderErrorCode | None = None
    error_message: str | None = None  # Provider text, for logs and the record only

    @property
    def is_healthy(self) -> bool:
        return self.error_code is None

    @property
    def login_required(self) -> bool:
        return self.error_code == ProviderErrorCode.LOGIN_REQUIRED


@dataclass
class ProviderBankAccount:
    """Normalized bank account data from any provider."""

    provider_account_id: str  # Provider's external ID for the account
    name: str
    official_name: str | None = None
    type: str | None = None  # e.g., "depository", "credit"
    subtype: str | None = None  # e.g., "checking"
    available_balance: Decimal | None = None
    current_balance: Decimal | None = None
    limit: Decimal | None = None  # Credit limit (credit accounts only)
    mask: str | None = None
    iso_currency_code: str | None = None


@dataclass
class ProviderTransaction:
    """Normalized transaction data from any provider.

    Amount sign follows the provider: positive = outflow (expense).
    """

    provider_transaction_id: str
    provider_account_id: str
    amount: Decimal
    date: date
    name: str
    merchant_name: str | None = None
    categories: list[str] = field(default_factory=list)  # Provider hierarchy, broadest first
    pending: bool = False
    iso_currency_code: str | None = None
    recurrence_id: str | None = None


@dataclass
class TokenRefreshResult:
    """New credentials returned by a token refresh."""

    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None


class BankingProviderClient(Protocol):
    """Protocol that all banking provider clients must implement.

    Methods raise the typed exceptions from :mod:`integrations.exceptions`
    on failure, each carrying a :class:`ProviderErrorCode`.
    """

    @property
    def provider_name(self) -> str:
        """Return the provider key stored on BankConnection.provider (e.g. 'plaid')."""
        ...

    def is_configured(self) -> bool:
        """Check if this provider has credentials configured."""
        ...

    def get_item_details(self, access_token: str) -> ItemStatus:
        """Fetch the health of the connection behind ``access_token``.

        Item-level errors reported by the provider are returned in the
        ItemStatus; request-level failures are raised.
        """
        ...

    def get_accounts(self, access_token: str) -> list[ProviderBankAccount]:
        """Fetch all accounts (with balances) for the connection."""
        ...

    def get_transactions(
        self,
        access_token: str,
        connection: "BankConnection",
        accounts: list["BankAccount"],
        start_date: str,
        end_date: str,
    ) -> list[ProviderTransaction]:
        """Fetch transactions between two ``YYYY-MM-DD`` dates (inclusive).

        Transactions for accounts not in ``accounts`` are dropped.
        """
        ...

    def refresh_access_token(
        self, access_token: str, refresh_token: str | None = None
    ) -> TokenRefreshResult:
        """Exchange the current credentials for fresh ones."""
        ...
