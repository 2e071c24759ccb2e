"""Tests for the periodic connection sweeps in ConnectionHealthService."""

from datetime import timedelta
from unittest.mock import patch

import pytest

from config import settings
from jobs.events import SYNC_CONNECTION
from models import AccountStatus, ConnectionStatus, UserActivity, UserActivityType
from services.connection_health_service import ConnectionHealthService
from tests.fixtures import NOW, create_account, create_connection


@pytest.fixture
def production():
    with patch.object(settings, "ENVIRONMENT", "production"):
        yield


@pytest.fixture
def service(dispatcher):
    return ConnectionHealthService(dispatcher)


def _broken_connection(db, user, **kwargs):
    values = {
        "status": ConnectionStatus.ERROR,
        "error_message": "Plaid error (INSTITUTION_DOWN)",
        "last_status_changed_at": NOW - timedelta(days=2),
    }
    values.update(kwargs)
    connection = create_connection(db, user, **values)
    create_account(db, connection)
    return connection


class TestProductionGate:
    @pytest.mark.parametrize(
        "sweep",
        [
            "run_expiring_sweep",
            "run_disconnected_sweep",
            "run_expiration_date_sweep",
            "run_reconnect_alert_sweep",
            "schedule_connection_syncs",
        ],
    )
    def test_sweeps_skip_outside_production(self, db, stale_connection, service, dispatcher, sweep):
        with patch.object(settings, "ENVIRONMENT", "development"):
            result = getattr(service, sweep)(db, now=NOW)

        assert result.status == "skipped"
        assert result.reason == "not_production"
        assert dispatcher.events == []


@pytest.mark.usefixtures("production")
class TestExpiringSweep:
    def test_warns_inactive_connection(self, db, stale_connection, service, dispatcher):
        result = service.run_expiring_sweep(db, now=NOW)

        assert result.notified == 1
        [notice] = dispatcher.notifications("connection_warning")
        assert notice["title"] == "Bank Connection Expiring Soon"
        assert notice["data"]["days_inactive"] == 25
        assert notice["data"]["days_until_expiry"] == 5
        assert notice["data"]["account_count"] == 1
        db.refresh(stale_connection)
        assert stale_connection.last_expiry_notified_at == NOW
        assert stale_connection.expiry_notification_count == 1
        assert stale_connection.status == ConnectionStatus.ACTIVE.value

    def test_second_run_does_not_renotify(self, db, stale_connection, service, dispatcher):
        service.run_expiring_sweep(db, now=NOW)
        service.run_expiring_sweep(db, now=NOW + timedelta(hours=1))

        assert len(dispatcher.notifications()) == 1

    def test_renotifies_after_a_week(self, db, user, service, dispatcher):
        connection = create_connection(
            db,
            user,
            last_accessed_at=NOW - timedelta(days=22),
            last_expiry_notified_at=NOW - timedelta(days=8),
        )
        create_account(db, connection)

        result = service.run_expiring_sweep(db, now=NOW)

        assert result.notified == 1

    def test_recently_used_connection_ignored(self, db, account, service, dispatcher):
        result = service.run_expiring_sweep(db, now=NOW)

        assert result.notified == 0
        assert dispatcher.events == []

    def test_long_inactive_connection_needs_attention(self, db, user, service, dispatcher):
        connection = create_connection(db, user, last_accessed_at=NOW - timedelta(days=31))
        create_account(db, connection)

        result = service.run_expiring_sweep(db, now=NOW)

        assert result.updated == 1
        db.refresh(connection)
        assert connection.status == ConnectionStatus.REQUIRES_ATTENTION.value
        assert connection.error_message == "Connection may have expired due to inactivity"
        assert dispatcher.notifications()[0]["data"]["days_until_expiry"] == 0

    def test_exactly_thirty_days_inactive_needs_attention(self, db, user, service, dispatcher):
        connection = create_connection(db, user, last_accessed_at=NOW - timedelta(days=30))
        create_account(db, connection)

        result = service.run_expiring_sweep(db, now=NOW)

        assert result.updated == 1
        db.refresh(connection)
        assert connection.status == ConnectionStatus.REQUIRES_ATTENTION.value
        assert dispatcher.notifications()[0]["data"]["days_until_expiry"] == 0

    def test_connection_without_enabled_accounts_ignored(self, db, user, service, dispatcher):
        connection = create_connection(db, user, last_accessed_at=NOW - timedelta(days=25))
        create_account(db, connection, enabled=False)

        result = service.run_expiring_sweep(db, now=NOW)

        assert result.notified == 0

    def test_disabled_connection_ignored(self, db, user, service, dispatcher):
        connection = create_connection(
            db, user, last_accessed_at=NOW - timedelta(days=25), disabled=True
        )
        create_account(db, connection)

        result = service.run_expiring_sweep(db, now=NOW)

        assert result.notified == 0


@pytest.mark.usefixtures("production")
class TestDisconnectedSweep:
    def test_notifies_broken_connection(self, db, user, service, dispatcher):
        connection = _broken_connection(db, user)

        result = service.run_disconnected_sweep(db, now=NOW)

        assert result.notified == 1
        [notice] = dispatcher.notifications("connection_expired")
        assert notice["title"] == "Bank Connection Disconnected"
        assert notice["data"]["status"] == ConnectionStatus.ERROR.value
        assert "INSTITUTION_DOWN" not in notice["message"]
        db.refresh(connection)
        assert connection.notification_count == 1
        assert connection.last_notified_at == NOW

    def test_recently_notified_connection_skipped(self, db, user, service, dispatcher):
        _broken_connection(db, user, last_notified_at=NOW - timedelta(days=1))

        result = service.run_disconnected_sweep(db, now=NOW)

        assert result.notified == 0

    def test_healthy_connection_ignored(self, db, account, service, dispatcher):
        result = service.run_disconnected_sweep(db, now=NOW)

        assert result.notified == 0

    def test_abandoned_connection_is_disabled(self, db, user, service, dispatcher):
        connection = _broken_connection(
            db,
            user,
            status=ConnectionStatus.LOGIN_REQUIRED,
            last_status_changed_at=NOW - timedelta(days=31),
            last_notified_at=NOW - timedelta(days=1),
            notification_count=5,
        )

        result = service.run_disconnected_sweep(db, now=NOW)

        assert result.disabled == 1
        db.refresh(connection)
        assert connection.status == ConnectionStatus.DISCONNECTED.value
        assert connection.disabled is True
        for account in connection.accounts:
            assert account.status == AccountStatus.DISCONNECTED.value
            assert account.enabled is False
        activity = db.query(UserActivity).one()
        assert activity.type == UserActivityType.CONNECTION_DISABLED.value
        assert activity.activity_metadata["connection_id"] == connection.id

    def test_exactly_thirty_days_unresolved_is_disabled(self, db, user, service, dispatcher):
        connection = _broken_connection(
            db,
            user,
            last_status_changed_at=NOW - timedelta(days=30),
            last_notified_at=NOW - timedelta(days=1),
            notification_count=5,
        )

        result = service.run_disconnected_sweep(db, now=NOW)

        assert result.disabled == 1
        db.refresh(connection)
        assert connection.status == ConnectionStatus.DISCONNECTED.value

    def test_too_few_notifications_keeps_connection(self, db, user, service, dispatcher):
        connection = _broken_connection(
            db,
            user,
            last_status_changed_at=NOW - timedelta(days=40),
            last_notified_at=NOW - timedelta(days=1),
            notification_count=4,
        )

        result = service.run_disconnected_sweep(db, now=NOW)

        assert result.disabled == 0
        db.refresh(connection)
        assert connection.disabled is False

    def test_recent_failure_keeps_connection(self, db, user, service, dispatcher):
        connection = _broken_connection(
            db,
            user,
            last_status_changed_at=NOW - timedelta(days=10),
            last_notified_at=NOW - timedelta(days=1),
            notification_count=6,
        )

        service.run_disconnected_sweep(db, now=NOW)

        db.refresh(connection)
        assert connection.status == ConnectionStatus.ERROR.value


@pytest.mark.usefixtures("production")
class TestExpirationDateSweep:
    def _expiring(self, db, user, days, **kwargs):
        connection = create_connection(db, user, expires_at=NOW + timedelta(days=days), **kwargs)
        create_account(db, connection)
        return connection

    def test_critical_inside_three_days(self, db, user, service, dispatcher):
        self._expiring(db, user, 2)

        result = service.run_expiration_date_sweep(db, now=NOW)

        assert result.notified == 1
        [notice] = dispatcher.notifications("connection_critical")
        assert notice["data"]["days_remaining"] == 2

    def test_warning_inside_fourteen_days(self, db, user, service, dispatcher):
        connection = self._expiring(db, user, 10)

        service.run_expiration_date_sweep(db, now=NOW)

        [notice] = dispatcher.notifications("connection_warning")
        assert notice["data"]["days_remaining"] == 10
        db.refresh(connection)
        assert connection.last_expiry_notified_at == NOW

    def test_partial_day_rounds_up(self, db, user, service, dispatcher):
        self._expiring(db, user, 0.25)

        service.run_expiration_date_sweep(db, now=NOW)

        assert dispatcher.notifications()[0]["data"]["days_remaining"] == 1

    @pytest.mark.parametrize("days", [20, -1])
    def test_outside_window_ignored(self, db, user, service, dispatcher, days):
        self._expiring(db, user, days)

        result = service.run_expiration_date_sweep(db, now=NOW)

        assert result.notified == 0

    def test_at_most_once_per_day(self, db, user, service, dispatcher):
        self._expiring(db, user, 5, last_expiry_notified_at=NOW - timedelta(hours=12))

        result = service.run_expiration_date_sweep(db, now=NOW)

        assert result.notified == 0


@pytest.mark.usefixtures("production")
class TestReconnectAlertSweep:
    def test_alerts_login_required(self, db, user, service, dispatcher):
        connection = _broken_connection(db, user, status=ConnectionStatus.LOGIN_REQUIRED)

        result = service.run_reconnect_alert_sweep(db, now=NOW)

        assert result.notified == 1
        [notice] = dispatcher.notifications("connection_critical")
        assert notice["title"] == "Reconnect Your Bank"
        assert notice["data"]["alert_count"] == 1
        db.refresh(connection)
        assert connection.alert_count == 1
        assert connection.last_alerted_at == NOW

    def test_recent_alert_not_repeated(self, db, user, service, dispatcher):
        _broken_connection(
            db,
            user,
            status=ConnectionStatus.LOGIN_REQUIRED,
            last_alerted_at=NOW - timedelta(days=1),
        )

        result = service.run_reconnect_alert_sweep(db, now=NOW)

        assert result.notified == 0

    def test_other_failures_ignored(self, db, user, service, dispatcher):
        _broken_connection(db, user)

        result = service.run_reconnect_alert_sweep(db, now=NOW)

        assert result.notified == 0


@pytest.mark.usefixtures("production")
class TestScheduleConnectionSyncs:
    def test_dispatches_one_sync_per_eligible_connection(self, db, user, service, dispatcher):
        active = create_connection(db, user)
        create_account(db, active)
        broken = _broken_connection(db, user)
        disabled = create_connection(db, user, disabled=True)
        create_account(db, disabled)
        create_connection(db, user)  # no accounts

        result = service.schedule_connection_syncs(db, now=NOW)

        assert result.dispatched == 2
        ids = {payload["connection_id"] for _, payload, _ in dispatcher.of(SYNC_CONNECTION)}
        assert ids == {active.id, broken.id}
        assert all(payload["manual_sync"] is False for _, payload, _ in dispatcher.of(SYNC_CONNECTION))
