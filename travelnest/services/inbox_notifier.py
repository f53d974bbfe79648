"""
Per-user inbox. Rows are never deleted; status moves from pending to a
terminal value and read flips on view or on any terminal transition.
"""
from sqlalchemy.orm import Session
from datetime import datetime
from typing import List, Optional
import logging
import uuid
from travelnest.core.errors import NotFound, Forbidden
from travelnest.models.invitation_token import InvitationToken
from travelnest.models.notification import Notification, NotificationStatus, NotificationType

logger = logging.getLogger(__name__)

# Statuses a terminal accept/reject may overwrite. Rejected, revoked and
# expired notifications stay as they are.
RESOLVABLE_STATUSES = (NotificationStatus.PENDING.value, NotificationStatus.ACCEPTED.value)


def post(
    db: Session,
    user_id: uuid.UUID,
    type: str,
    trip_id: Optional[uuid.UUID],
    actor_id: Optional[uuid.UUID],
    message: str,
    metadata: Optional[dict] = None,
) -> Notification:
    notification = Notification(
        user_id=user_id,
        type=type,
        trip_id=trip_id,
        actor_id=actor_id,
        message=message,
        read=False,
        status=NotificationStatus.PENDING.value,
        details=metadata or {},
    )
    db.add(notification)
    db.flush()
    logger.info(f"[INBOX] Posted {type} notification {notification.id} to user {user_id}")
    return notification


def get(db: Session, notification_id: uuid.UUID) -> Optional[Notification]:
    return db.query(Notification).filter(Notification.id == notification_id).first()


def get_owned(db: Session, notification_id: uuid.UUID, requesting_user_id: uuid.UUID) -> Notification:
    notification = get(db, notification_id)
    if notification is None:
        raise NotFound("Notification not found")
    if notification.user_id != requesting_user_id:
        raise Forbidden("Not authorized to update this notification")
    return notification


def revoke_pending(
    db: Session,
    user_id: uuid.UUID,
    trip_id: uuid.UUID,
    type: str = NotificationType.TRIP_INVITE.value,
) -> int:
    """Mark every pending notification for (user, trip, type) revoked and read."""
    revoked = db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.trip_id == trip_id,
        Notification.type == type,
        Notification.status == NotificationStatus.PENDING.value,
    ).update({
        Notification.status: NotificationStatus.REVOKED.value,
        Notification.read: True,
        Notification.updated_at: datetime.utcnow(),
    }, synchronize_session=False)
    if revoked:
        logger.info(f"[INBOX] Revoked {revoked} pending notification(s) for user {user_id} on trip {trip_id}")
    return revoked


def resolve_by_subject(
    db: Session,
    user_id: uuid.UUID,
    trip_id: uuid.UUID,
    type: str,
    new_status: str,
) -> int:
    """Move pending/accepted notifications for (user, trip, type) to a terminal status."""
    return db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.trip_id == trip_id,
        Notification.type == type,
        Notification.status.in_(RESOLVABLE_STATUSES),
    ).update({
        Notification.status: new_status,
        Notification.read: True,
        Notification.updated_at: datetime.utcnow(),
    }, synchronize_session=False)


def resolve(db: Session, notification_id: uuid.UUID, new_status: str) -> bool:
    """Same rule as resolve_by_subject, for a single notification."""
    updated = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.status.in_(RESOLVABLE_STATUSES),
    ).update({
        Notification.status: new_status,
        Notification.read: True,
        Notification.updated_at: datetime.utcnow(),
    }, synchronize_session=False)
    return bool(updated)


def mark_read(db: Session, notification_id: uuid.UUID, requesting_user_id: uuid.UUID) -> Notification:
    notification = get_owned(db, notification_id, requesting_user_id)
    if not notification.read:
        notification.read = True
        db.flush()
    return notification


def list_for_user(db: Session, user_id: uuid.UUID, unread_only: bool = False) -> List[Notification]:
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.read.is_(False))
    return query.order_by(Notification.created_at.desc()).all()


def unread_count(db: Session, user_id: uuid.UUID) -> int:
    return db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.read.is_(False),
    ).count()


def expire_stale(db: Session, now: Optional[datetime] = None) -> int:
    """
    Mark pending trip invites expired when the token they point at has
    expired or no longer exists. Used by the maintenance sweep.
    """
    now = now or datetime.utcnow()
    pending = db.query(Notification).filter(
        Notification.type == NotificationType.TRIP_INVITE.value,
        Notification.status == NotificationStatus.PENDING.value,
    ).all()

    expired = 0
    for notification in pending:
        token_id = (notification.details or {}).get("invitation_token_id")
        if not token_id:
            continue
        try:
            token_uuid = uuid.UUID(str(token_id))
        except (ValueError, TypeError):
            logger.warning(f"[INBOX] Notification {notification.id} has malformed token reference {token_id!r}")
            continue
        token = db.query(InvitationToken).filter(InvitationToken.id == token_uuid).first()
        if token is not None and (token.used_at is not None or token.expires_at >= now):
            continue
        notification.status = NotificationStatus.EXPIRED.value
        notification.read = True
        expired += 1

    if expired:
        db.flush()
        logger.info(f"[INBOX] Expired {expired} stale invitation notification(s)")
    return expired
