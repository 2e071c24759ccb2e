"""Plaid API client.

This module implements the BankingProviderClient protocol for Plaid via the
plaid-python SDK: Item health checks, account balances, transaction
history and access token rotation.

Plaid errors arrive as ``ApiException`` with a JSON body carrying
``error_type`` and ``error_code``. They are translated into the typed
exceptions from :mod:`integrations.exceptions` by code lookup.
"""

import json
import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable

from plaid import ApiException, Environment
from plaid.api.plaid_api import PlaidApi
from plaid.api_client import ApiClient
from plaid.configuration import Configuration
from plaid.model.accounts_get_request import AccountsGetRequest
from plaid.model.item_access_token_invalidate_request import ItemAccessTokenInvalidateRequest
from plaid.model.item_get_request import ItemGetRequest
from plaid.model.transactions_get_request import TransactionsGetRequest
from plaid.model.transactions_get_request_options import TransactionsGetRequestOptions
from urllib3.exceptions import HTTPError as TransportError

from config import settings
from integrations.exceptions import (
    ProviderConnectionError,
    ProviderDataError,
    ProviderError,
    error_for_code,
)
from integrations.provider_protocol import (
    ItemStatus,
    ProviderBankAccount,
    ProviderErrorCode,
    ProviderTransaction,
    TokenRefreshResult,
)

logger = logging.getLogger(__name__)

# Map PLAID_ENVIRONMENT setting to SDK host URLs.
# Plaid's Development environment is deprecated; only sandbox and production
# are supported.
_ENVIRONMENT_MAP: dict[str, str] = {
    "sandbox": Environment.Sandbox,
    "production": Environment.Production,
}

# Plaid error_code -> provider-independent code
_PLAID_ERROR_CODES: dict[str, ProviderErrorCode] = {
    "ITEM_LOGIN_REQUIRED": ProviderErrorCode.LOGIN_REQUIRED,
    "INVALID_ACCESS_TOKEN": ProviderErrorCode.INVALID_TOKEN,
    "ITEM_NOT_FOUND": ProviderErrorCode.INVALID_TOKEN,
    "INSTITUTION_DOWN": ProviderErrorCode.PROVIDER_UNAVAILABLE,
    "INSTITUTION_NOT_RESPONDING": ProviderErrorCode.PROVIDER_UNAVAILABLE,
    "INSTITUTION_NOT_AVAILABLE": ProviderErrorCode.PROVIDER_UNAVAILABLE,
    "PLANNED_MAINTENANCE": ProviderErrorCode.PROVIDER_UNAVAILABLE,
    "INTERNAL_SERVER_ERROR": ProviderErrorCode.PROVIDER_UNAVAILABLE,
    "PRODUCT_NOT_READY": ProviderErrorCode.PROVIDER_UNAVAILABLE,
}

# Fallback on error_type when the error_code is not listed above
_PLAID_ERROR_TYPES: dict[str, ProviderErrorCode] = {
    "RATE_LIMIT_EXCEEDED": ProviderErrorCode.RATE_LIMITED,
    "INSTITUTION_ERROR": ProviderErrorCode.PROVIDER_UNAVAILABLE,
    "API_ERROR": ProviderErrorCode.PROVIDER_UNAVAILABLE,
}

# Plaid access tokens do not expire; rotated tokens are re-checked monthly.
TOKEN_LIFETIME_DAYS = 30

TRANSACTIONS_PAGE_SIZE = 500


class PlaidClient:
    """Wrapper around the Plaid API.

    Implements the BankingProviderClient protocol.
    """

    def __init__(
        self,
        client_id: str | None = None,
        secret: str | None = None,
        environment: str | None = None,
    ):
        self._client_id = client_id or settings.PLAID_CLIENT_ID
        self._secret = secret or settings.PLAID_SECRET
        self._environment = environment or settings.PLAID_ENVIRONMENT

        # Lazily created on first use
        self._api: PlaidApi | None = None

    def _get_api(self) -> PlaidApi:
        """Return (and cache) a PlaidApi instance."""
        if self._api is None:
            env_key = self._environment.lower()
            host = _ENVIRONMENT_MAP.get(env_key)
            if host is None:
                logger.warning(
                    "Unknown PLAID_ENVIRONMENT=%r, falling back to sandbox. "
                    "Valid values: sandbox, production",
                    self._environment,
                )
                host = Environment.Sandbox
            logger.info(
                "Plaid API client: environment=%s, host=%s, client_id=<configured>",
                env_key,
                host,
            )
            configuration = Configuration(
                host=host,
                api_key={
                    "clientId": self._client_id,
                    "secret": self._secret,
                },
            )
            api_client = ApiClient(configuration)
            self._api = PlaidApi(api_client)
        return self._api

    @property
    def provider_name(self) -> str:
        """Return the provider key stored on BankConnection.provider."""
        return "plaid"

    def is_configured(self) -> bool:
        """Check if Plaid credentials are configured."""
        return bool(self._client_id) and bool(self._secret)

    # ------------------------------------------------------------------
    # BankingProviderClient protocol
    # ------------------------------------------------------------------

    def get_item_details(self, access_token: str) -> ItemStatus:
        """Fetch Item health via /item/get.

        An Item-level error (e.g. ITEM_LOGIN_REQUIRED) is returned in the
        ItemStatus rather than raised; the request itself succeeded.
        """
        response = self._call(
            "item_get", self._get_api().item_get, ItemGetRequest(access_token=access_token)
        )
        item = response.get("item") or {}
        error = item.get("error")

        status = ItemStatus(
            item_id=item.get("item_id"),
            institution_id=item.get("institution_id"),
        )
        if error:
            error_code = error.get("error_code") or ""
            status.error_code = self._code_for(error_code, error.get("error_type") or "")
            status.error_message = (
                f"Plaid error ({error_code}): {error.get('error_message') or ''}".strip()
            )
        return status

    def get_accounts(self, access_token: str) -> list[ProviderBankAccount]:
        """Fetch accounts and balances via /accounts/get."""
        response = self._call(
            "accounts_get",
            self._get_api().accounts_get,
            AccountsGetRequest(access_token=access_token),
        )

        accounts: list[ProviderBankAccount] = []
        for acct in response.get("accounts", []) or []:
            account_id = acct.get("account_id")
            if not account_id:
                raise ProviderDataError("Plaid account without account_id", self.provider_name)
            balances = acct.get("balances") or {}
            accounts.append(ProviderBankAccount(
                provider_account_id=account_id,
                name=acct.get("name") or acct.get("official_name") or "Plaid Account",
                official_name=acct.get("official_name"),
                type=self._enum_value(acct.get("type")),
                subtype=self._enum_value(acct.get("subtype")),
                available_balance=self._to_decimal(balances.get("available")),
                current_balance=self._to_decimal(balances.get("current")),
                limit=self._to_decimal(balances.get("limit")),
                mask=acct.get("mask"),
                iso_currency_code=balances.get("iso_currency_code"),
            ))
        return accounts

    def get_transactions(
        self,
        access_token: str,
        connection,
        accounts: list,
        start_date: str,
        end_date: str,
    ) -> list[ProviderTransaction]:
        """Fetch transactions via /transactions/get with offset pagination.

        Args:
            access_token: The Item's access token.
            connection: The BankConnection the token belongs to (for logging).
            accounts: BankAccount rows; only their transactions are returned.
            start_date: First day, ``YYYY-MM-DD``.
            end_date: Last day, ``YYYY-MM-DD``.
        """
        try:
            start = date.fromisoformat(start_date)
            end = date.fromisoformat(end_date)
        except ValueError as e:
            raise ProviderDataError(f"Invalid date range: {e}", self.provider_name) from e

        known_ids = {a.provider_account_id for a in accounts}
        api = self._get_api()

        transactions: list[ProviderTransaction] = []
        total_transactions = None
        offset = 0

        while True:
            request = TransactionsGetRequest(
                access_token=access_token,
                start_date=start,
                end_date=end,
                options=TransactionsGetRequestOptions(
                    count=TRANSACTIONS_PAGE_SIZE,
                    offset=offset,
                    account_ids=sorted(known_ids),
                ),
            )
            response = self._call("transactions_get", api.transactions_get, request)

            if total_transactions is None:
                total_transactions = response.get("total_transactions", 0)

            page = response.get("transactions", []) or []
            for txn in page:
                mapped = self._map_transaction(txn)
                if mapped is None:
                    continue
                if mapped.provider_account_id not in known_ids:
                    logger.warning(
                        "No matching bank account for transaction %s (connection %s)",
                        mapped.provider_transaction_id,
                        getattr(connection, "id", None),
                    )
                    continue
                transactions.append(mapped)

            offset += len(page)
            if not page or offset >= total_transactions:
                break

        logger.info(
            "Plaid: %d transactions fetched for %s..%s", len(transactions), start_date, end_date
        )
        return transactions

    def refresh_access_token(
        self, access_token: str, refresh_token: str | None = None
    ) -> TokenRefreshResult:
        """Rotate the Item's access token via /item/access_token/invalidate.

        Plaid has no refresh tokens; ``refresh_token`` is ignored.
        """
        response = self._call(
            "item_access_token_invalidate",
            self._get_api().item_access_token_invalidate,
            ItemAccessTokenInvalidateRequest(access_token=access_token),
        )
        new_token = response.get("new_access_token")
        if not new_token:
            raise ProviderDataError("Plaid returned no new access token", self.provider_name)
        return TokenRefreshResult(
            access_token=new_token,
            refresh_token=None,
            expires_at=datetime.now(timezone.utc) + timedelta(days=TOKEN_LIFETIME_DAYS),
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _call(self, operation: str, fn: Callable[[Any], Any], request: Any) -> Any:
        """Invoke an SDK method, translating failures into ProviderErrors."""
        try:
            return fn(request)
        except ApiException as e:
            error = self._map_plaid_error(e)
            logger.warning("Plaid %s failed: %s (%s)", operation, error.code.value, e.status)
            raise error from e
        except TransportError as e:
            logger.warning("Plaid %s transport failure: %s", operation, e)
            raise ProviderConnectionError(
                f"Plaid {operation} failed: {e}", self.provider_name
            ) from e

    def _map_transaction(self, txn: dict) -> ProviderTransaction | None:
        """Map a Plaid transaction to a ProviderTransaction."""
        transaction_id = txn.get("transaction_id")
        if not transaction_id:
            return None

        amount = self._to_decimal(txn.get("amount"))
        if amount is None:
            return None

        txn_date = txn.get("date")
        if isinstance(txn_date, datetime):
            txn_date = txn_date.date()
        elif isinstance(txn_date, str):
            txn_date = date.fromisoformat(txn_date)
        if txn_date is None:
            return None

        return ProviderTransaction(
            provider_transaction_id=transaction_id,
            provider_account_id=txn.get("account_id", ""),
            amount=amount,
            date=txn_date,
            name=txn.get("name") or txn.get("merchant_name") or "",
            merchant_name=txn.get("merchant_name"),
            categories=list(txn.get("category") or []),
            pending=bool(txn.get("pending")),
            iso_currency_code=txn.get("iso_currency_code"),
        )

    @staticmethod
    def _code_for(error_code: str, error_type: str, status: int = 0) -> ProviderErrorCode:
        """Translate Plaid's error_code / error_type / HTTP status into a code."""
        if error_code in _PLAID_ERROR_CODES:
            return _PLAID_ERROR_CODES[error_code]
        if error_type in _PLAID_ERROR_TYPES:
            return _PLAID_ERROR_TYPES[error_type]
        if status in (401, 403):
            return ProviderErrorCode.INVALID_TOKEN
        if status == 429:
            return ProviderErrorCode.RATE_LIMITED
        if status >= 500:
            return ProviderErrorCode.PROVIDER_UNAVAILABLE
        return ProviderErrorCode.UNKNOWN

    @classmethod
    def _map_plaid_error(cls, exc: ApiException) -> ProviderError:
        """Map a Plaid ApiException to a typed ProviderError."""
        status = exc.status or 0
        message = str(exc)

        # Try to extract error_code from the body
        error_code = ""
        error_type = ""
        try:
            body = json.loads(exc.body) if exc.body else {}
            error_code = body.get("error_code") or ""
            error_type = body.get("error_type") or ""
            error_message = body.get("error_message", "")
            if error_message:
                message = f"Plaid error ({error_code}): {error_message}"
        except (TypeError, ValueError, AttributeError):
            logger.debug("Unparseable Plaid error body", exc_info=True)

        code = cls._code_for(error_code, error_type, status)
        return error_for_code(code, message, provider_name="plaid", status_code=status or None)

    @staticmethod
    def _enum_value(value) -> str | None:
        """Plaid SDK enums wrap their string in ``.value``."""
        if value is None:
            return None
        return str(getattr(value, "value", value))

    @staticmethod
    def _to_decimal(value) -> Decimal | None:
        """Convert a value to Decimal, returning None on failure."""
        if value is None:
            return None
        try:
            return Decimal(str(value))
        except (InvalidOperation, ValueError):
            return None
