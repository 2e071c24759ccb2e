"""Notification service - user-facing connection and transaction notices.

Notifications are dispatched as ``connection-notification`` jobs and
delivered asynchronously. Delivery is an audit entry plus a log line;
email rendering and transport live outside this service.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy.orm import Session

from config import settings
from jobs.dispatcher import JobDispatcher
from jobs.events import CONNECTION_NOTIFICATION
from models import BankAccount, Transaction, User, UserActivity, UserActivityType
from models.utils import as_naive_utc, utc_now
from services.exceptions import UserNotFoundError

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    CONNECTION_CRITICAL = "connection_critical"
    CONNECTION_WARNING = "connection_warning"
    CONNECTION_EXPIRED = "connection_expired"
    CONNECTION_FAILED = "connection_failed"
    CONNECTION_REFRESH_FAILED = "connection_refresh_failed"
    TRANSACTION_SUMMARY = "transaction_summary"


@dataclass
class TransactionSummaryResult:
    """Outcome of a transaction summary run."""

    status: str  # "sent" | "skipped"
    transaction_count: int = 0
    total_spent: Decimal = Decimal("0")
    large_transactions: list[dict[str, Any]] = field(default_factory=list)
    reason: str | None = None


class NotificationService:
    """Dispatch and deliver user notifications."""

    def __init__(self, dispatcher: JobDispatcher):
        self._dispatcher = dispatcher

    def notify(
        self,
        user_id: str,
        type: NotificationType | str,
        title: str,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> None:
        """Queue a notification for delivery.

        ``title`` and ``message`` are shown to the user as-is and must not
        contain raw provider error text.
        """
        self._dispatcher.schedule(
            CONNECTION_NOTIFICATION,
            {
                "user_id": user_id,
                "type": NotificationType(type).value,
                "title": title,
                "message": message,
                "data": data or {},
            },
        )
        logger.info("Queued %s notification for user %s", NotificationType(type).value, user_id)

    def deliver(
        self,
        db: Session,
        user_id: str,
        type: str,
        title: str,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> UserActivity:
        """Deliver a queued notification and record it in the activity log."""
        activity = UserActivity(
            user_id=user_id,
            type=UserActivityType.NOTIFICATION_SENT.value,
            detail=title,
            activity_metadata={"notification_type": type, "message": message, "data": data or {}},
        )
        db.add(activity)
        db.commit()
        logger.info("Delivered %s notification to user %s: %s", type, user_id, title)
        return activity

    def send_transaction_summary(
        self,
        db: Session,
        user_id: str,
        now: datetime | None = None,
    ) -> TransactionSummaryResult:
        """Summarize new expenses since the previous summary.

        Only settled expenses (positive amounts, not pending) created since
        the last summary count; the first summary looks back
        TRANSACTION_SUMMARY_LOOKBACK_DAYS.

        Raises:
            UserNotFoundError: If the user does not exist.
        """
        user = db.get(User, user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        if not user.notifications_enabled:
            return TransactionSummaryResult(status="skipped", reason="notifications_disabled")

        now = as_naive_utc(now or utc_now())
        since = user.last_transaction_notification_at or (
            now - timedelta(days=settings.TRANSACTION_SUMMARY_LOOKBACK_DAYS)
        )

        transactions = (
            db.query(Transaction)
            .filter(
                Transaction.user_id == user_id,
                Transaction.amount > 0,
                Transaction.pending.is_(False),
                Transaction.created_at > since,
            )
            .order_by(Transaction.created_at.desc())
            .all()
        )
        if not transactions:
            return TransactionSummaryResult(status="skipped", reason="no_new_transactions")

        by_account: dict[str, dict[str, Any]] = {}
        for txn in transactions:
            entry = by_account.setdefault(
                txn.bank_account_id, {"count": 0, "total": Decimal("0")}
            )
            entry["count"] += 1
            entry["total"] += Decimal(txn.amount)

        account_names = dict(
            db.query(BankAccount.id, BankAccount.name)
            .filter(BankAccount.id.in_(list(by_account)))
            .all()
        )

        threshold = Decimal(settings.LARGE_TRANSACTION_THRESHOLD)
        large = sorted(
            (t for t in transactions if Decimal(t.amount) >= threshold),
            key=lambda t: Decimal(t.amount),
            reverse=True,
        )[: settings.LARGE_TRANSACTION_LIMIT]
        large_items = [
            {
                "id": t.id,
                "name": t.merchant_name or t.name,
                "amount": str(t.amount),
                "date": t.date.isoformat(),
            }
            for t in large
        ]
        total_spent = sum((Decimal(t.amount) for t in transactions), Decimal("0"))

        self.notify(
            user_id,
            NotificationType.TRANSACTION_SUMMARY,
            "New Transactions",
            f"You have {len(transactions)} new transactions totaling {total_spent:.2f}.",
            {
                "transaction_count": len(transactions),
                "total_spent": str(total_spent),
                "accounts": [
                    {
                        "account_id": account_id,
                        "name": account_names.get(account_id),
                        "count": entry["count"],
                        "total": str(entry["total"]),
                    }
                    for account_id, entry in by_account.items()
                ],
                "large_transactions": large_items,
            },
        )

        user.last_transaction_notification_at = now
        db.commit()

        return TransactionSummaryResult(
            status="sent",
            transaction_count=len(transactions),
            total_spent=total_spent,
            large_transactions=large_items,
        )
