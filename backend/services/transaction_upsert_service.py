"""Transaction upsert service - idempotent transaction import keyed on provider id."""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from config import settings
from integrations.provider_protocol import ProviderTransaction
from integrations.provider_registry import ProviderRegistry, get_provider_registry
from models import AccountStatus, BankAccount, Transaction
from models.utils import as_naive_utc, utc_now
from services.exceptions import AccountNotFoundError

logger = logging.getLogger(__name__)

# Provider primary category (lowercased) -> internal category
CATEGORY_MAP: dict[str, str] = {
    "bank fees": "BANK_FEES",
    "bills and utilities": "UTILITIES",
    "utilities": "UTILITIES",
    "entertainment": "ENTERTAINMENT",
    "food and drink": "FOOD_AND_DRINK",
    "groceries": "FOOD_AND_DRINK",
    "restaurants": "FOOD_AND_DRINK",
    "general merchandise": "GENERAL_MERCHANDISE",
    "shops": "GENERAL_MERCHANDISE",
    "general services": "GENERAL_SERVICES",
    "service": "GENERAL_SERVICES",
    "government and non-profit": "GOVERNMENT_AND_NON_PROFIT",
    "home improvement": "HOME_IMPROVEMENT",
    "income": "INCOME",
    "loan payments": "LOAN_PAYMENTS",
    "medical": "MEDICAL",
    "healthcare": "MEDICAL",
    "personal care": "PERSONAL_CARE",
    "transfer": "TRANSFER",
    "transportation": "TRANSPORTATION",
    "travel": "TRAVEL",
}

DEFAULT_CATEGORY = "OTHER"


def map_category(categories: list[str]) -> tuple[str | None, str | None]:
    """Map a provider category hierarchy to (category, subcategory).

    No categories leaves both empty for the categorization job to fill.
    """
    if not categories:
        return None, None
    category = CATEGORY_MAP.get(categories[0].strip().lower(), DEFAULT_CATEGORY)
    subcategory = categories[1] if len(categories) > 1 else None
    return category, subcategory


@dataclass
class UpsertResult:
    new: int = 0
    updated: int = 0
    skipped: int = 0


@dataclass
class TransactionSyncResult:
    status: str  # "success" | "skipped"
    total: int = 0
    new: int = 0
    updated: int = 0


class TransactionUpsertService:
    """Import provider transactions without ever creating duplicates."""

    def __init__(self, provider_registry: Optional[ProviderRegistry] = None):
        self._registry = provider_registry

    @property
    def registry(self) -> ProviderRegistry:
        """Get the provider registry, creating default if not provided."""
        if self._registry is None:
            self._registry = get_provider_registry()
        return self._registry

    def upsert_transactions(
        self,
        db: Session,
        bank_account_id: str,
        user_id: str,
        transactions: list[ProviderTransaction],
    ) -> UpsertResult:
        """Insert new transactions and update existing ones in one commit.

        Rows are matched on provider_transaction_id. Existing rows get the
        provider's current amount, category, date, pending flag, merchant
        and name; nothing is deleted. An id already stored under another
        account is left untouched and counted as skipped. If any row fails
        the whole batch is rolled back and the error propagates.
        """
        # Last occurrence wins when a batch repeats an id
        by_id: dict[str, ProviderTransaction] = {}
        for txn in transactions:
            by_id[txn.provider_transaction_id] = txn
        if not by_id:
            return UpsertResult()

        result = UpsertResult()
        try:
            existing = {
                row.provider_transaction_id: row
                for row in db.query(Transaction)
                .filter(Transaction.provider_transaction_id.in_(list(by_id)))
                .all()
            }

            for provider_id, txn in by_id.items():
                category, subcategory = map_category(txn.categories)
                row = existing.get(provider_id)
                if row is not None and row.bank_account_id != bank_account_id:
                    logger.warning(
                        "Transaction %s belongs to account %s, not %s; skipping",
                        provider_id, row.bank_account_id, bank_account_id,
                    )
                    result.skipped += 1
                    continue
                if row is not None:
                    row.amount = txn.amount
                    row.category = category
                    row.subcategory = subcategory
                    row.date = txn.date
                    row.pending = txn.pending
                    row.merchant_name = txn.merchant_name
                    row.name = txn.name
                    result.updated += 1
                else:
                    db.add(Transaction(
                        bank_account_id=bank_account_id,
                        user_id=user_id,
                        provider_transaction_id=provider_id,
                        amount=txn.amount,
                        currency=txn.iso_currency_code,
                        date=txn.date,
                        name=txn.name,
                        merchant_name=txn.merchant_name,
                        category=category,
                        subcategory=subcategory,
                        pending=txn.pending,
                        recurrence_id=txn.recurrence_id,
                    ))
                    result.new += 1

            db.commit()
        except Exception:
            db.rollback()
            logger.error("Transaction batch for account %s rolled back", bank_account_id)
            raise

        logger.info(
            "Account %s: transactions upserted (%d new, %d updated, %d skipped)",
            bank_account_id, result.new, result.updated, result.skipped,
        )
        return result

    def sync_account_transactions(
        self,
        db: Session,
        bank_account_id: str,
        access_token: str | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
        now: datetime | None = None,
    ) -> TransactionSyncResult:
        """Fetch an account's recent transactions and upsert them in batches.

        The default window re-reads a few days before the last sync to pick
        up pending transactions that settled; a first sync reaches back
        further. The window ends tomorrow to include today in every
        timezone.

        Raises:
            AccountNotFoundError: If the account does not exist.
        """
        account = db.get(BankAccount, bank_account_id)
        if account is None:
            raise AccountNotFoundError(bank_account_id)
        if account.status != AccountStatus.ACTIVE.value:
            logger.info("Account %s is %s, skipping transaction sync", bank_account_id, account.status)
            return TransactionSyncResult(status="skipped")

        now = as_naive_utc(now or utc_now())
        start, end = self._date_window(account.last_synced_at, now)
        start_date = start_date or start.isoformat()
        end_date = end_date or end.isoformat()

        connection = account.connection
        provider = self.registry.get_provider(connection.provider)
        transactions = provider.get_transactions(
            access_token or connection.access_token,
            connection,
            [account],
            start_date,
            end_date,
        )

        result = TransactionSyncResult(status="success", total=len(transactions))
        batch_size = settings.TRANSACTION_UPSERT_BATCH_SIZE
        for offset in range(0, len(transactions), batch_size):
            batch = self.upsert_transactions(
                db, account.id, account.user_id, transactions[offset:offset + batch_size]
            )
            result.new += batch.new
            result.updated += batch.updated

        logger.info(
            "Account %s: %d transactions for %s..%s (%d new, %d updated)",
            bank_account_id, result.total, start_date, end_date, result.new, result.updated,
        )
        return result

    @staticmethod
    def _date_window(last_synced_at: datetime | None, now: datetime) -> tuple[date, date]:
        if last_synced_at is not None:
            start = last_synced_at - timedelta(days=settings.TRANSACTION_SYNC_OVERLAP_DAYS)
        else:
            start = now - timedelta(days=settings.TRANSACTION_INITIAL_SYNC_DAYS)
        end = now + timedelta(days=1)
        return start.date(), end.date()
