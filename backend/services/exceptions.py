"""Domain exceptions raised by the sync, recovery and notification services.

Provider-side failures live in :mod:`integrations.exceptions`; the classes
here describe problems with our own records, which no amount of retrying
will fix.
"""


class BankSyncError(Exception):
    """Base exception for bank sync domain errors."""

    pass


class ConnectionNotFoundError(BankSyncError):
    """The referenced BankConnection does not exist."""

    def __init__(self, connection_id: str):
        self.connection_id = connection_id
        super().__init__(f"Connection {connection_id} not found")


class AccountNotFoundError(BankSyncError):
    """The referenced BankAccount does not exist."""

    def __init__(self, bank_account_id: str):
        self.bank_account_id = bank_account_id
        super().__init__(f"Bank account {bank_account_id} not found")


class UserNotFoundError(BankSyncError):
    """The referenced User does not exist."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User {user_id} not found")


class ProviderAccountMismatchError(BankSyncError):
    """The provider response did not include the account we asked about."""

    def __init__(self, bank_account_id: str, provider_account_id: str):
        self.bank_account_id = bank_account_id
        self.provider_account_id = provider_account_id
        super().__init__(
            f"Provider did not return account {provider_account_id} "
            f"(bank account {bank_account_id})"
        )


class InvalidStatusTransitionError(BankSyncError):
    """A connection status change that the state machine forbids."""

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move connection from {current} to {requested}")


class ProviderNotConfiguredError(BankSyncError, ValueError):
    """A connection references a provider with no registered client."""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"Provider '{provider}' is not configured")
