from sqlalchemy import Column, String, Text, Boolean, DateTime, ForeignKey, JSON, Index
from sqlalchemy.dialects.postgresql import UUID
import uuid
from datetime import datetime
import enum
from travelnest.db.session import Base


class NotificationType(str, enum.Enum):
    TRIP_INVITE = "trip_invite"
    # Future types: TRIP_UPDATE, MEMBER_JOINED


class NotificationStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"
    REVOKED = "revoked"


class Notification(Base):
    """
    Per-user inbox entry. Never deleted; terminal statuses are kept as history.
    """
    __tablename__ = "notifications"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(50), nullable=False, default=NotificationType.TRIP_INVITE.value)
    trip_id = Column(UUID(as_uuid=True), ForeignKey("trips.id", ondelete="CASCADE"), nullable=True)
    actor_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    message = Column(Text, nullable=True)
    read = Column(Boolean, default=False, nullable=False)
    status = Column(String(20), default=NotificationStatus.PENDING.value, nullable=False, index=True)
    # "metadata" is reserved on declarative classes, so the attribute is named details
    details = Column("metadata", JSON, nullable=True)  # role, trip_title, invitation_token_id
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_notifications_user_trip_type", "user_id", "trip_id", "type"),
    )
