"""Banking provider lookup.

A BankConnection stores the key of the provider it was linked through
(``"plaid"``). Services resolve that key to a client here. Providers are
imported lazily and only registered when their credentials are present,
so a worker without Plaid keys still starts and simply fails those jobs.
"""

import importlib
import logging
from dataclasses import dataclass
from functools import lru_cache

from integrations.provider_protocol import BankingProviderClient
from services.exceptions import ProviderNotConfiguredError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderDefinition:
    """Where to find the client class for one provider key."""

    key: str
    module_path: str
    class_name: str


PROVIDER_DEFINITIONS: list[ProviderDefinition] = [
    ProviderDefinition("plaid", "integrations.plaid_client", "PlaidClient"),
]

ALL_PROVIDER_NAMES: list[str] = [d.key for d in PROVIDER_DEFINITIONS]


class ProviderRegistry:
    """Provider clients keyed by ``BankConnection.provider``.

    Example:
        registry = get_provider_registry()
        provider = registry.get_provider(connection.provider)
        status = provider.get_item_details(connection.access_token)
    """

    def __init__(self):
        self._providers: dict[str, BankingProviderClient] = {}

    def register_provider(self, provider: BankingProviderClient) -> None:
        """Register ``provider`` under its provider_name, replacing any previous one."""
        self._providers[provider.provider_name] = provider

    def get_provider(self, name: str) -> BankingProviderClient:
        """Return the client for a connection's provider key.

        Raises:
            ProviderNotConfiguredError: If no client is registered for ``name``.
        """
        try:
            return self._providers[name]
        except KeyError:
            raise ProviderNotConfiguredError(name) from None

    def list_providers(self) -> list[str]:
        return list(self._providers)

    def is_configured(self, name: str) -> bool:
        return name in self._providers

    def initialize_default_providers(self) -> None:
        """Register every provider in :data:`PROVIDER_DEFINITIONS` that has credentials."""
        for definition in PROVIDER_DEFINITIONS:
            try:
                module = importlib.import_module(definition.module_path)
            except ImportError:
                logger.debug("Provider skipped (not installed): %s", definition.key)
                continue
            self._try_init_provider(definition, getattr(module, definition.class_name))

        if self._providers:
            logger.info("Banking providers: %s", ", ".join(self.list_providers()))
        else:
            logger.warning("No banking providers configured; sync jobs will fail")

    def _try_init_provider(self, definition: ProviderDefinition, cls: type) -> None:
        try:
            instance = cls()
        except Exception:
            logger.warning("Provider failed to initialize: %s", definition.key, exc_info=True)
            return
        if instance.is_configured():
            self.register_provider(instance)
        else:
            logger.debug("Provider skipped (no credentials): %s", definition.key)


@lru_cache
def get_provider_registry() -> ProviderRegistry:
    """The process-wide registry, built on first use."""
    registry = ProviderRegistry()
    registry.initialize_default_providers()
    return registry
