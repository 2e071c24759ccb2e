"""SQLAlchemy ORM models."""

from .bank_account import AccountStatus, BankAccount
from .bank_connection import BankConnection, BankProvider, ConnectionStatus
from .transaction import Transaction
from .user import User
from .user_activity import UserActivity, UserActivityType
from .utils import generate_uuid

__all__ = ["AccountStatus", "BankAccount", "BankConnection", "BankProvider", "ConnectionStatus", "Transaction", "User", "UserActivity", "UserActivityType", "generate_uuid"]
