"""Job registry.

Every background job is declared once in :data:`JOB_DEFINITIONS`. The
worker hands this list to :func:`jobs.tasks.register_tasks`; nothing is
registered as an import side effect.
"""

from dataclasses import dataclass
from typing import Any, Callable

from celery.schedules import crontab
from sqlalchemy.orm import Session

from integrations.provider_registry import ProviderRegistry
from jobs import events
from jobs.dispatcher import JobDispatcher
from services.account_sync_service import AccountSyncService
from services.connection_health_service import ConnectionHealthService
from services.connection_recovery_service import ConnectionRecoveryService
from services.connection_refresh_service import ConnectionRefreshService
from services.connection_sync_service import ConnectionSyncService
from services.initial_setup_service import InitialSetupService
from services.notification_service import NotificationService
from services.transaction_upsert_service import TransactionUpsertService

ACCOUNT_JOB_TIME_LIMIT = 300
SWEEP_JOB_TIME_LIMIT = 600


@dataclass
class JobContext:
    """Services shared by every job in one worker process."""

    connection_sync: ConnectionSyncService
    account_sync: AccountSyncService
    transaction_upsert: TransactionUpsertService
    recovery: ConnectionRecoveryService
    refresh: ConnectionRefreshService
    health: ConnectionHealthService
    notifications: NotificationService
    initial_setup: InitialSetupService


def build_job_context(
    provider_registry: ProviderRegistry, dispatcher: JobDispatcher
) -> JobContext:
    """Wire the services around one provider registry and one dispatcher."""
    notifications = NotificationService(dispatcher)
    return JobContext(
        connection_sync=ConnectionSyncService(provider_registry, dispatcher),
        account_sync=AccountSyncService(provider_registry, dispatcher),
        transaction_upsert=TransactionUpsertService(provider_registry),
        recovery=ConnectionRecoveryService(provider_registry, dispatcher, notifications),
        refresh=ConnectionRefreshService(provider_registry, dispatcher, notifications),
        health=ConnectionHealthService(dispatcher, notifications),
        notifications=notifications,
        initial_setup=InitialSetupService(provider_registry, dispatcher),
    )


JobHandler = Callable[..., Any]


@dataclass(frozen=True)
class JobDefinition:
    """One background job.

    Attributes:
        name: Event / Celery task name.
        handler: ``handler(db, context, **payload)``.
        time_limit: Hard limit in seconds before the worker kills the run.
        schedule: Beat schedule for periodic jobs, None for event-driven ones.
    """

    name: str
    handler: JobHandler
    time_limit: int = ACCOUNT_JOB_TIME_LIMIT
    schedule: crontab | None = None


# ----------------------------------------------------------------------
# Handlers
# ----------------------------------------------------------------------


def _sync_connection(db: Session, ctx: JobContext, connection_id: str, manual_sync: bool = False):
    return ctx.connection_sync.sync_connection(db, connection_id, manual_sync=manual_sync)


def _sync_account(
    db: Session,
    ctx: JobContext,
    bank_account_id: str,
    access_token: str | None = None,
    manual_sync: bool = False,
    user_id: str | None = None,
):
    return ctx.account_sync.sync_account(
        db, bank_account_id, manual_sync=manual_sync, access_token=access_token
    )


def _upsert_transactions(
    db: Session,
    ctx: JobContext,
    bank_account_id: str,
    user_id: str | None = None,
    access_token: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
):
    return ctx.transaction_upsert.sync_account_transactions(
        db, bank_account_id, access_token=access_token, start_date=start_date, end_date=end_date
    )


def _connection_recovery(
    db: Session,
    ctx: JobContext,
    connection_id: str,
    provider: str,
    access_token: str,
    retry_count: int = 0,
):
    return ctx.recovery.recover_connection(
        db, connection_id, provider, access_token, retry_count=retry_count
    )


def _refresh_connection(db: Session, ctx: JobContext, connection_id: str):
    return ctx.refresh.refresh_connection(db, connection_id)


def _initial_setup(
    db: Session,
    ctx: JobContext,
    user_id: str,
    provider: str,
    access_token: str,
    institution_id: str | None = None,
    institution_name: str | None = None,
):
    return ctx.initial_setup.setup_connection(
        db, user_id, provider, access_token, institution_id, institution_name
    )


def _connection_notification(
    db: Session,
    ctx: JobContext,
    user_id: str,
    type: str,
    title: str,
    message: str,
    data: dict | None = None,
):
    activity = ctx.notifications.deliver(db, user_id, type, title, message, data)
    return {"status": "delivered", "activity_id": activity.id}


def _transaction_notifications(db: Session, ctx: JobContext, user_id: str):
    return ctx.notifications.send_transaction_summary(db, user_id)


def _expiring_sweep(db: Session, ctx: JobContext):
    return ctx.health.run_expiring_sweep(db)


def _disconnected_sweep(db: Session, ctx: JobContext):
    return ctx.health.run_disconnected_sweep(db)


def _expiration_date_sweep(db: Session, ctx: JobContext):
    return ctx.health.run_expiration_date_sweep(db)


def _reconnect_alert_sweep(db: Session, ctx: JobContext):
    return ctx.health.run_reconnect_alert_sweep(db)


def _schedule_bank_syncs(db: Session, ctx: JobContext):
    return ctx.health.schedule_connection_syncs(db)


JOB_DEFINITIONS: list[JobDefinition] = [
    JobDefinition(events.SYNC_CONNECTION, _sync_connection),
    JobDefinition(events.SYNC_ACCOUNT, _sync_account),
    JobDefinition(events.UPSERT_TRANSACTIONS, _upsert_transactions),
    JobDefinition(events.CONNECTION_RECOVERY, _connection_recovery),
    JobDefinition(events.REFRESH_CONNECTION, _refresh_connection),
    JobDefinition(events.INITIAL_SETUP, _initial_setup),
    JobDefinition(events.CONNECTION_NOTIFICATION, _connection_notification),
    JobDefinition(events.TRANSACTION_NOTIFICATIONS, _transaction_notifications),
    JobDefinition(
        events.CONNECTION_EXPIRATION_SWEEP,
        _expiration_date_sweep,
        SWEEP_JOB_TIME_LIMIT,
        crontab(minute=0, hour=9),
    ),
    JobDefinition(
        events.EXPIRING_CONNECTIONS_SWEEP,
        _expiring_sweep,
        SWEEP_JOB_TIME_LIMIT,
        crontab(minute=0, hour=10),
    ),
    JobDefinition(
        events.RECONNECT_ALERTS_SWEEP,
        _reconnect_alert_sweep,
        SWEEP_JOB_TIME_LIMIT,
        crontab(minute=0, hour=11),
    ),
    JobDefinition(
        events.DISCONNECTED_CONNECTIONS_SWEEP,
        _disconnected_sweep,
        SWEEP_JOB_TIME_LIMIT,
        crontab(minute=0, hour=12),
    ),
    JobDefinition(
        events.SCHEDULE_BANK_SYNCS,
        _schedule_bank_syncs,
        SWEEP_JOB_TIME_LIMIT,
        crontab(minute=0, hour="*/6"),
    ),
]


def get_job(name: str) -> JobDefinition:
    """Look up a job definition by name.

    Raises:
        ValueError: If no job has that name.
    """
    for definition in JOB_DEFINITIONS:
        if definition.name == name:
            return definition
    raise ValueError(f"Job '{name}' is not registered")


def build_beat_schedule(definitions: list[JobDefinition]) -> dict[str, dict[str, Any]]:
    """Celery beat entries for every periodic job."""
    return {
        definition.name: {"task": definition.name, "schedule": definition.schedule}
        for definition in definitions
        if definition.schedule is not None
    }
