"""Connection health service - the periodic connection sweeps.

Every sweep is safe to re-run: "notified recently" timestamps keep a
second run on the same day from notifying again. Sweeps only act in the
production environment; elsewhere they return ``skipped``.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import or_
from sqlalchemy.orm import Query, Session

from config import settings
from jobs.dispatcher import JobDispatcher
from jobs.events import SYNC_CONNECTION
from models import (
    AccountStatus,
    BankAccount,
    BankConnection,
    ConnectionStatus,
    UserActivity,
    UserActivityType,
)
from models.bank_connection import UNHEALTHY_STATUSES
from models.utils import as_naive_utc, utc_now
from services.notification_service import NotificationService, NotificationType

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    status: str  # "success" | "skipped"
    processed: int = 0
    notified: int = 0
    updated: int = 0
    disabled: int = 0
    dispatched: int = 0
    reason: str | None = None


class ConnectionHealthService:
    """Warn about expiring connections, chase broken ones, disable abandoned ones."""

    def __init__(
        self,
        dispatcher: JobDispatcher,
        notifications: NotificationService | None = None,
    ):
        self._dispatcher = dispatcher
        self._notifications = notifications or NotificationService(dispatcher)

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    def run_expiring_sweep(self, db: Session, now: datetime | None = None) -> SweepResult:
        """Warn about ACTIVE connections that have gone unused for a while.

        Connections unused for EXPIRY_WARNING_INACTIVE_DAYS and not warned
        in the last EXPIRY_RENOTIFY_DAYS get a ``connection_warning``.
        Connections unused for EXPIRY_INACTIVE_DAYS are moved to
        REQUIRES_ATTENTION.
        """
        if not settings.is_production:
            return self._skipped("expiring")

        now = as_naive_utc(now or utc_now())
        warn_cutoff = now - timedelta(days=settings.EXPIRY_WARNING_INACTIVE_DAYS)
        renotify_cutoff = now - timedelta(days=settings.EXPIRY_RENOTIFY_DAYS)
        result = SweepResult(status="success")

        expiring = (
            self._eligible(db)
            .filter(
                BankConnection.status == ConnectionStatus.ACTIVE.value,
                BankConnection.last_accessed_at < warn_cutoff,
                or_(
                    BankConnection.last_expiry_notified_at.is_(None),
                    BankConnection.last_expiry_notified_at < renotify_cutoff,
                ),
            )
            .all()
        )
        for connection in expiring:
            days_inactive = (now - connection.last_accessed_at).days
            days_until_expiry = max(0, settings.EXPIRY_INACTIVE_DAYS - days_inactive)
            institution = connection.institution_name or "your bank"
            self._notifications.notify(
                connection.user_id,
                NotificationType.CONNECTION_WARNING,
                "Bank Connection Expiring Soon",
                f"Your connection to {institution} hasn't been used in {days_inactive} days "
                f"and may expire in {days_until_expiry} days.",
                {
                    "connection_id": connection.id,
                    "institution_name": connection.institution_name,
                    "days_inactive": days_inactive,
                    "days_until_expiry": days_until_expiry,
                    "account_count": self._enabled_account_count(connection),
                },
            )
            connection.last_expiry_notified_at = now
            connection.expiry_notification_count += 1
            db.commit()
            result.notified += 1

        expired = (
            self._eligible(db)
            .filter(
                BankConnection.status == ConnectionStatus.ACTIVE.value,
                BankConnection.last_accessed_at
                <= now - timedelta(days=settings.EXPIRY_INACTIVE_DAYS),
            )
            .all()
        )
        for connection in expired:
            connection.set_status(
                ConnectionStatus.REQUIRES_ATTENTION,
                "Connection may have expired due to inactivity",
                now,
            )
            db.commit()
            result.updated += 1

        result.processed = len(expiring)
        logger.info(
            "Expiring sweep: %d notified, %d marked for attention", result.notified, result.updated
        )
        return result

    def run_disconnected_sweep(self, db: Session, now: datetime | None = None) -> SweepResult:
        """Remind users about broken connections and disable abandoned ones.

        Connections in ERROR, LOGIN_REQUIRED or REQUIRES_ATTENTION that were
        not notified in DISCONNECTED_RENOTIFY_DAYS get a
        ``connection_expired`` notification. Connections stuck for
        AUTO_DISABLE_AFTER_DAYS after AUTO_DISABLE_MIN_NOTIFICATIONS
        reminders become DISCONNECTED, along with their accounts.
        """
        if not settings.is_production:
            return self._skipped("disconnected")

        now = as_naive_utc(now or utc_now())
        renotify_cutoff = now - timedelta(days=settings.DISCONNECTED_RENOTIFY_DAYS)
        result = SweepResult(status="success")

        broken = (
            self._eligible(db)
            .filter(
                BankConnection.status.in_(UNHEALTHY_STATUSES),
                or_(
                    BankConnection.last_notified_at.is_(None),
                    BankConnection.last_notified_at < renotify_cutoff,
                ),
            )
            .all()
        )
        for connection in broken:
            institution = connection.institution_name or "your bank"
            self._notifications.notify(
                connection.user_id,
                NotificationType.CONNECTION_EXPIRED,
                "Bank Connection Disconnected",
                f"Your connection to {institution} has stopped updating. "
                "Please reconnect to keep your accounts up to date.",
                {
                    "connection_id": connection.id,
                    "institution_name": connection.institution_name,
                    "status": connection.status,
                    "account_count": self._enabled_account_count(connection),
                },
            )
            connection.last_notified_at = now
            connection.notification_count += 1
            db.commit()
            result.notified += 1

        abandoned = (
            self._eligible(db)
            .filter(
                BankConnection.status.in_(UNHEALTHY_STATUSES),
                BankConnection.last_status_changed_at
                <= now - timedelta(days=settings.AUTO_DISABLE_AFTER_DAYS),
                BankConnection.notification_count >= settings.AUTO_DISABLE_MIN_NOTIFICATIONS,
            )
            .all()
        )
        for connection in abandoned:
            self._disable(db, connection, now)
            result.disabled += 1

        result.processed = len(broken)
        logger.info(
            "Disconnected sweep: %d notified, %d disabled", result.notified, result.disabled
        )
        return result

    def run_expiration_date_sweep(self, db: Session, now: datetime | None = None) -> SweepResult:
        """Warn about connections whose credentials expire soon.

        ``expires_at`` within EXPIRATION_CRITICAL_DAYS gives a
        ``connection_critical``; within EXPIRATION_WARNING_DAYS a
        ``connection_warning``. At most one notice per connection per day.
        """
        if not settings.is_production:
            return self._skipped("expiration-date")

        now = as_naive_utc(now or utc_now())
        result = SweepResult(status="success")

        expiring = (
            self._eligible(db)
            .filter(
                BankConnection.status == ConnectionStatus.ACTIVE.value,
                BankConnection.expires_at.is_not(None),
                BankConnection.expires_at > now,
                BankConnection.expires_at
                <= now + timedelta(days=settings.EXPIRATION_WARNING_DAYS),
                or_(
                    BankConnection.last_expiry_notified_at.is_(None),
                    BankConnection.last_expiry_notified_at < now - timedelta(days=1),
                ),
            )
            .all()
        )
        for connection in expiring:
            days_remaining = max(1, math.ceil((connection.expires_at - now).total_seconds() / 86400))
            institution = connection.institution_name or "your bank"
            data = {
                "connection_id": connection.id,
                "institution_name": connection.institution_name,
                "days_remaining": days_remaining,
            }
            if days_remaining <= settings.EXPIRATION_CRITICAL_DAYS:
                self._notifications.notify(
                    connection.user_id,
                    NotificationType.CONNECTION_CRITICAL,
                    "Bank Connection Expiring Soon",
                    f"Your connection to {institution} will expire in {days_remaining} days. "
                    "Please reconnect to avoid interruption.",
                    data,
                )
            else:
                self._notifications.notify(
                    connection.user_id,
                    NotificationType.CONNECTION_WARNING,
                    "Bank Connection Update Needed",
                    f"Your connection to {institution} will expire in {days_remaining} days.",
                    data,
                )
            connection.last_expiry_notified_at = now
            connection.expiry_notification_count += 1
            db.commit()
            result.notified += 1

        result.processed = len(expiring)
        logger.info("Expiration-date sweep: %d notified", result.notified)
        return result

    def run_reconnect_alert_sweep(self, db: Session, now: datetime | None = None) -> SweepResult:
        """Alert users whose bank requires them to log in again."""
        if not settings.is_production:
            return self._skipped("reconnect-alert")

        now = as_naive_utc(now or utc_now())
        renotify_cutoff = now - timedelta(days=settings.RECONNECT_ALERT_RENOTIFY_DAYS)
        result = SweepResult(status="success")

        login_required = (
            self._eligible(db)
            .filter(
                BankConnection.status == ConnectionStatus.LOGIN_REQUIRED.value,
                or_(
                    BankConnection.last_alerted_at.is_(None),
                    BankConnection.last_alerted_at < renotify_cutoff,
                ),
            )
            .all()
        )
        for connection in login_required:
            institution = connection.institution_name or "your bank"
            self._notifications.notify(
                connection.user_id,
                NotificationType.CONNECTION_CRITICAL,
                "Reconnect Your Bank",
                f"{institution} needs you to sign in again before we can update your accounts.",
                {
                    "connection_id": connection.id,
                    "institution_name": connection.institution_name,
                    "alert_count": connection.alert_count + 1,
                },
            )
            connection.last_alerted_at = now
            connection.alert_count += 1
            db.commit()
            result.notified += 1

        result.processed = len(login_required)
        logger.info("Reconnect alert sweep: %d alerts sent", result.notified)
        return result

    def schedule_connection_syncs(self, db: Session, now: datetime | None = None) -> SweepResult:
        """Queue an automatic ``sync-connection`` for every syncable connection."""
        if not settings.is_production:
            return self._skipped("bank-sync")

        connections = (
            self._eligible(db)
            .filter(BankConnection.status != ConnectionStatus.DISCONNECTED.value)
            .order_by(BankConnection.created_at, BankConnection.id)
            .all()
        )
        for connection in connections:
            self._dispatcher.schedule(
                SYNC_CONNECTION, {"connection_id": connection.id, "manual_sync": False}
            )

        logger.info("Scheduled %d connection syncs", len(connections))
        return SweepResult(
            status="success", processed=len(connections), dispatched=len(connections)
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _eligible(db: Session) -> Query:
        """Non-disabled connections with at least one enabled account."""
        return db.query(BankConnection).filter(
            BankConnection.disabled.is_(False),
            BankConnection.accounts.any(BankAccount.enabled.is_(True)),
        )

    @staticmethod
    def _enabled_account_count(connection: BankConnection) -> int:
        return sum(1 for account in connection.accounts if account.enabled)

    @staticmethod
    def _skipped(sweep: str) -> SweepResult:
        logger.info("Skipping %s sweep outside production (ENVIRONMENT=%s)", sweep, settings.ENVIRONMENT)
        return SweepResult(status="skipped", reason="not_production")

    @staticmethod
    def _disable(db: Session, connection: BankConnection, now: datetime) -> None:
        """Soft-disable a connection and every account under it."""
        connection.set_status(ConnectionStatus.DISCONNECTED, connection.error_message, now)
        connection.disabled = True
        for account in connection.accounts:
            account.status = AccountStatus.DISCONNECTED.value
            account.enabled = False
        db.add(UserActivity(
            user_id=connection.user_id,
            type=UserActivityType.CONNECTION_DISABLED.value,
            detail=f"Connection to {connection.institution_name or 'bank'} disabled after repeated failures",
            activity_metadata={"connection_id": connection.id, "notification_count": connection.notification_count},
        ))
        db.commit()
        logger.warning("Connection %s auto-disabled", connection.id)
