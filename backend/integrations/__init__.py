"""External API integrations.

This package contains:
- Provider protocol: Common interface for banking data providers
- Provider registry: Manages the configured providers
- Plaid client: Integration with the Plaid API
"""

from integrations.provider_protocol import (
    BankingProviderClient,
    ItemStatus,
    ProviderBankAccount,
    ProviderErrorCode,
    ProviderTransaction,
    TokenRefreshResult,
)
from integrations.provider_registry import ProviderRegistry, get_provider_registry

__all__ = [
    "BankingProviderClient",
    "ItemStatus",
    "ProviderBankAccount",
    "ProviderErrorCode",
    "ProviderRegistry",
    "ProviderTransaction",
    "TokenRefreshResult",
    "get_provider_registry",
]
