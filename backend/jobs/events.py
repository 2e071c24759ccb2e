"""Job event names.

Each name is both the event services dispatch and the Celery task name
the worker registers for it.
"""

SYNC_CONNECTION = "sync-connection"
SYNC_ACCOUNT = "sync-account"
UPSERT_TRANSACTIONS = "upsert-transactions"
CONNECTION_RECOVERY = "connection-recovery"
REFRESH_CONNECTION = "refresh-connection"
INITIAL_SETUP = "initial-setup"
CONNECTION_NOTIFICATION = "connection-notification"
TRANSACTION_NOTIFICATIONS = "transaction-notifications"

# Periodic sweeps (beat schedule)
EXPIRING_CONNECTIONS_SWEEP = "expiring-connections-sweep"
DISCONNECTED_CONNECTIONS_SWEEP = "disconnected-connections-sweep"
CONNECTION_EXPIRATION_SWEEP = "connection-expiration-sweep"
RECONNECT_ALERTS_SWEEP = "reconnect-alerts-sweep"
SCHEDULE_BANK_SYNCS = "schedule-bank-syncs"
