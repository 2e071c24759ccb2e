"""Typed exception hierarchy for provider errors.

Provides structured exceptions for differentiated error handling
(auth errors vs rate limits vs transient network errors vs data issues).
Every exception carries a :class:`ProviderErrorCode`; services and the
job retry policy switch on the class and code, never on the message.
"""

from integrations.provider_protocol import ProviderErrorCode


class ProviderError(Exception):
    """Base exception for all provider-related errors.

    Carries the provider name so callers can identify which provider failed.
    """

    default_code = ProviderErrorCode.UNKNOWN

    def __init__(
        self,
        message: str,
        provider_name: str = "",
        code: ProviderErrorCode | None = None,
    ):
        self.provider_name = provider_name
        self.code = code or self.default_code
        super().__init__(message)

    @property
    def retriable(self) -> bool:
        return False


class ProviderAuthError(ProviderError):
    """Credentials missing, expired, or invalid (HTTP 401/403).

    Never retried: the user has to re-authenticate.
    """

    default_code = ProviderErrorCode.INVALID_TOKEN

    @property
    def login_required(self) -> bool:
        return self.code == ProviderErrorCode.LOGIN_REQUIRED


class ProviderConnectionError(ProviderError):
    """Network failures such as timeouts or refused connections.

    Retriable by default.
    """

    default_code = ProviderErrorCode.NETWORK

    def __init__(
        self,
        message: str,
        provider_name: str = "",
        retriable: bool = True,
        code: ProviderErrorCode | None = None,
    ):
        self._retriable = retriable
        super().__init__(message, provider_name, code)

    @property
    def retriable(self) -> bool:
        return self._retriable


class ProviderAPIError(ProviderError):
    """HTTP 4xx/5xx responses from the provider API."""

    def __init__(
        self,
        message: str,
        provider_name: str = "",
        status_code: int | None = None,
        code: ProviderErrorCode | None = None,
    ):
        self.status_code = status_code
        super().__init__(message, provider_name, code)

    @property
    def retriable(self) -> bool:
        """429 (rate limit), 5xx and institution outages are retriable."""
        if self.code in (ProviderErrorCode.RATE_LIMITED, ProviderErrorCode.PROVIDER_UNAVAILABLE):
            return True
        if self.status_code is None:
            return False
        return self.status_code == 429 or self.status_code >= 500


class ProviderRateLimitError(ProviderAPIError):
    """The provider throttled us (HTTP 429 or a rate-limit error code)."""

    default_code = ProviderErrorCode.RATE_LIMITED

    def __init__(self, message: str, provider_name: str = "", status_code: int | None = 429):
        super().__init__(message, provider_name, status_code, ProviderErrorCode.RATE_LIMITED)


class ProviderDataError(ProviderError):
    """Malformed or unparseable response from the provider."""

    default_code = ProviderErrorCode.INVALID_RESPONSE


_AUTH_CODES = frozenset(
    {
        ProviderErrorCode.LOGIN_REQUIRED,
        ProviderErrorCode.INVALID_TOKEN,
        ProviderErrorCode.INVALID_REFRESH_TOKEN,
        ProviderErrorCode.REFRESH_TOKEN_EXPIRED,
    }
)


def error_for_code(
    code: ProviderErrorCode,
    message: str,
    provider_name: str = "",
    status_code: int | None = None,
) -> ProviderError:
    """Build the exception class that matches ``code``."""
    if code in _AUTH_CODES:
        return ProviderAuthError(message, provider_name, code)
    if code == ProviderErrorCode.RATE_LIMITED:
        return ProviderRateLimitError(message, provider_name, status_code or 429)
    if code == ProviderErrorCode.NETWORK:
        return ProviderConnectionError(message, provider_name)
    if code == ProviderErrorCode.INVALID_RESPONSE:
        return ProviderDataError(message, provider_name)
    return ProviderAPIError(message, provider_name, status_code, code)
