from sqlalchemy import Column, String, DateTime, ForeignKey, Index, text
from sqlalchemy.dialects.postgresql import UUID
import uuid
from datetime import datetime
from travelnest.db.session import Base


class InvitationToken(Base):
    """
    Emailed invitation link.
    Token is one-time use and expires. At most one unused token exists per
    (trip, email); issuing a new one removes the previous unused one.
    """
    __tablename__ = "invitation_tokens"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    trip_id = Column(UUID(as_uuid=True), ForeignKey("trips.id", ondelete="CASCADE"), nullable=False, index=True)
    email = Column(String(255), nullable=False, index=True)  # stored lower-cased
    role = Column(String(20), nullable=False, default="editor")  # editor | viewer
    token = Column(String(255), nullable=False, unique=True, index=True)
    invited_by = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    expires_at = Column(DateTime, nullable=False)
    used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index(
            "uq_invitation_tokens_trip_email_unused",
            "trip_id",
            "email",
            unique=True,
            postgresql_where=text("used_at IS NULL"),
            sqlite_where=text("used_at IS NULL"),
        ),
    )

    def is_expired(self, now: datetime = None) -> bool:
        return (now or datetime.utcnow()) > self.expires_at
