"""User model - owner of bank connections."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, String

from database import Base
from models.utils import generate_uuid


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String, unique=True, nullable=False)
    name = Column(String, nullable=True)
    notifications_enabled = Column(Boolean, default=True, nullable=False)
    last_transaction_notification_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
