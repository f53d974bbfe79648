"""
Trip membership table: who belongs to which trip, and whether they have joined.

All state transitions are single statements so concurrent requests settle on
the database's row-level atomicity rather than on application locks.
"""
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from datetime import datetime
from typing import List, Optional
import logging
import uuid
from travelnest.core.errors import AlreadyMember, NotFound, NotOwner, CannotRemoveOwner
from travelnest.models.trip import Trip
from travelnest.models.trip_member import TripMember, TripRole

logger = logging.getLogger(__name__)


def get(db: Session, trip_id: uuid.UUID, user_id: uuid.UUID) -> Optional[TripMember]:
    return db.query(TripMember).filter(
        TripMember.trip_id == trip_id,
        TripMember.user_id == user_id,
    ).first()


def list_by_trip(db: Session, trip_id: uuid.UUID) -> List[TripMember]:
    return (
        db.query(TripMember)
        .filter(TripMember.trip_id == trip_id)
        .order_by(TripMember.created_at.asc())
        .all()
    )


def ensure_owner(db: Session, trip_id: uuid.UUID, owner_id: uuid.UUID) -> TripMember:
    """Insert the owner's joined row at trip creation (no-op if it already exists)."""
    member = get(db, trip_id, owner_id)
    now = datetime.utcnow()
    if member:
        member.role = TripRole.OWNER.value
        if member.joined_at is None:
            member.joined_at = now
        db.flush()
        return member
    member = TripMember(
        trip_id=trip_id,
        user_id=owner_id,
        role=TripRole.OWNER.value,
        invited_by=None,
        invited_at=now,
        joined_at=now,
    )
    db.add(member)
    db.flush()
    return member


def upsert_pending(
    db: Session,
    trip_id: uuid.UUID,
    user_id: uuid.UUID,
    role: str,
    invited_by: uuid.UUID,
) -> TripMember:
    """
    Create or refresh a pending membership.

    A joined member is never downgraded: raises AlreadyMember instead.
    A pending row gets the new role and inviter.
    """
    now = datetime.utcnow()
    member = get(db, trip_id, user_id)
    if member is None:
        try:
            # The row is added inside the savepoint: a concurrent insert only
            # rolls back this INSERT, not the caller's transaction
            with db.begin_nested():
                member = TripMember(
                    trip_id=trip_id,
                    user_id=user_id,
                    role=role,
                    invited_by=invited_by,
                    invited_at=now,
                    joined_at=None,
                )
                db.add(member)
                db.flush()
            return member
        except IntegrityError:
            logger.info(f"[MEMBERS] Concurrent insert for trip {trip_id} / user {user_id}, re-reading")
            member = get(db, trip_id, user_id)
            if member is None:
                raise

    if member.joined_at is not None:
        raise AlreadyMember()

    updated = db.query(TripMember).filter(
        TripMember.id == member.id,
        TripMember.joined_at.is_(None),
    ).update({
        TripMember.role: role,
        TripMember.invited_by: invited_by,
        TripMember.invited_at: now,
    }, synchronize_session=False)
    if not updated:
        # Accepted between our read and write
        raise AlreadyMember()
    db.refresh(member)
    return member


def accept(db: Session, trip_id: uuid.UUID, user_id: uuid.UUID) -> TripMember:
    """
    Set joined_at if still pending. Accepting an already joined membership
    succeeds unchanged, so double accepts and racing tabs never raise.
    Raises NotFound if there is no row at all.
    """
    updated = db.query(TripMember).filter(
        TripMember.trip_id == trip_id,
        TripMember.user_id == user_id,
        TripMember.joined_at.is_(None),
    ).update({TripMember.joined_at: datetime.utcnow()}, synchronize_session=False)

    member = get(db, trip_id, user_id)
    if member is None:
        raise NotFound("Membership not found. The invitation may have been revoked.")
    if updated:
        db.refresh(member)
    else:
        logger.info(f"[MEMBERS] User {user_id} already joined trip {trip_id}")
    return member


def delete_pending(db: Session, trip_id: uuid.UUID, user_id: uuid.UUID) -> bool:
    """Delete the row only while it is still pending. Returns whether a row went away."""
    deleted = db.query(TripMember).filter(
        TripMember.trip_id == trip_id,
        TripMember.user_id == user_id,
        TripMember.joined_at.is_(None),
    ).delete(synchronize_session=False)
    return bool(deleted)


def remove(db: Session, trip: Trip, user_id: uuid.UUID, requested_by: uuid.UUID) -> TripMember:
    """
    Owner-only removal of a member.

    Returns the removed record (detached) so the caller can check whether it
    was still pending and clean up tokens and notifications.
    """
    if trip.owner_id != requested_by:
        raise NotOwner("Only the trip owner can remove members")
    if user_id == trip.owner_id:
        raise CannotRemoveOwner()

    member = get(db, trip.id, user_id)
    if member is None:
        raise NotFound("Member not found")
    if member.role == TripRole.OWNER.value:
        raise CannotRemoveOwner()

    db.delete(member)
    db.flush()
    logger.info(
        f"[MEMBERS] Removed user {user_id} from trip {trip.id} "
        f"({'pending' if member.joined_at is None else 'joined'})"
    )
    return member
