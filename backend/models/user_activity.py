"""UserActivity model - append-only audit log of user-facing events."""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, Text

from database import Base
from models.utils import generate_uuid


class UserActivityType(str, Enum):
    NOTIFICATION_SENT = "NOTIFICATION_SENT"
    CONNECTION_RECOVERED = "CONNECTION_RECOVERED"
    CONNECTION_DISABLED = "CONNECTION_DISABLED"
    CONNECTION_CREATED = "CONNECTION_CREATED"


class UserActivity(Base):
    """An audit entry. Created as a side effect of notifications and recovery."""

    __tablename__ = "user_activities"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=False)
    type = Column(String, nullable=False)
    detail = Column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    activity_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), index=True)
