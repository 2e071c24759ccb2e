"""Test fixtures and sample data."""
import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from models import (
    AccountStatus,
    BankAccount,
    BankConnection,
    ConnectionStatus,
    Transaction,
    User,
)
from sqlalchemy.orm import Session

# Fixed "now" for deterministic sweep and window tests (naive UTC)
NOW = datetime(2026, 10, 15, 12, 0, 0)


def create_user(db: Session, email: str = "pat@example.com", **kwargs) -> User:
    """Create and commit a User."""
    user = User(email=email, name=kwargs.pop("name", "Pat Example"), **kwargs)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def create_connection(
    db: Session,
    user: User,
    status: ConnectionStatus = ConnectionStatus.ACTIVE,
    **kwargs,
) -> BankConnection:
    """Create and commit a BankConnection.

    This is a helper function (not a fixture) so tests can build several
    connections in different states.
    """
    values = {
        "provider": "plaid",
        "access_token": "access-sandbox-123",
        "institution_id": "ins_1",
        "institution_name": "First Platypus Bank",
        "last_accessed_at": NOW,
    }
    values.update(kwargs)
    connection = BankConnection(user_id=user.id, status=status.value, **values)
    db.add(connection)
    db.commit()
    db.refresh(connection)
    return connection


def create_account(
    db: Session,
    connection: BankConnection,
    provider_account_id: str = "acc_checking",
    status: AccountStatus = AccountStatus.ACTIVE,
    **kwargs,
) -> BankAccount:
    """Create and commit a BankAccount under ``connection``."""
    values = {
        "name": "Everyday Checking",
        "type": "depository",
        "subtype": "checking",
        "enabled": True,
    }
    values.update(kwargs)
    account = BankAccount(
        bank_connection_id=connection.id,
        user_id=connection.user_id,
        provider_account_id=provider_account_id,
        status=status.value,
        **values,
    )
    db.add(account)
    db.commit()
    db.refresh(account)
    return account


def create_transaction(
    db: Session,
    account: BankAccount,
    provider_transaction_id: str,
    amount: Decimal,
    created_at: datetime | None = None,
    **kwargs,
) -> Transaction:
    """Create and commit a Transaction on ``account``."""
    values = {
        "date": (created_at or NOW).date(),
        "name": f"Purchase {provider_transaction_id}",
        "pending": False,
    }
    values.update(kwargs)
    txn = Transaction(
        bank_account_id=account.id,
        user_id=account.user_id,
        provider_transaction_id=provider_transaction_id,
        amount=amount,
        created_at=created_at or NOW,
        **values,
    )
    db.add(txn)
    db.commit()
    return txn


@pytest.fixture
def user(db):
    """Create a test user with notifications enabled."""
    return create_user(db)


@pytest.fixture
def connection(db, user):
    """Create an ACTIVE Plaid connection."""
    return create_connection(db, user)


@pytest.fixture
def account(db, connection):
    """Create an ACTIVE checking account on the test connection."""
    return create_account(db, connection)


@pytest.fixture
def stale_connection(db, user):
    """Create an ACTIVE connection nobody has used for 25 days."""
    connection = create_connection(
        db, user, last_accessed_at=NOW - timedelta(days=25)
    )
    create_account(db, connection)
    return connection
