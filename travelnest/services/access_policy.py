"""
Role and ownership checks for trips.

Only joined memberships grant a role; a pending invitee has no access yet.
The trip owner always resolves to "owner", even if their member row is missing.
"""
from sqlalchemy.orm import Session
from typing import Optional
import uuid
from travelnest.core.errors import Forbidden, NotFound, NotOwner
from travelnest.models.trip import Trip, TripPrivacy
from travelnest.models.trip_member import TripMember, TripRole

INVITER_ROLES = (TripRole.OWNER.value, TripRole.EDITOR.value)


def get_trip(db: Session, trip_id: uuid.UUID) -> Trip:
    trip = db.query(Trip).filter(Trip.id == trip_id).first()
    if trip is None:
        raise NotFound("Trip not found")
    return trip


def get_role(db: Session, trip: Trip, user_id: uuid.UUID) -> Optional[str]:
    """Effective role of a user on a trip, or None for non-members and pending invitees."""
    if trip.owner_id == user_id:
        return TripRole.OWNER.value
    member = db.query(TripMember).filter(
        TripMember.trip_id == trip.id,
        TripMember.user_id == user_id,
    ).first()
    if member is None or member.joined_at is None:
        return None
    return member.role


def can_view(db: Session, trip: Trip, user_id: uuid.UUID) -> bool:
    if trip.privacy != TripPrivacy.PRIVATE.value:
        return True
    return get_role(db, trip, user_id) is not None


def require_view(db: Session, trip: Trip, user_id: uuid.UUID) -> None:
    if not can_view(db, trip, user_id):
        raise Forbidden("You don't have access to this trip")


def require_invite(db: Session, trip: Trip, user_id: uuid.UUID) -> str:
    role = get_role(db, trip, user_id)
    if role not in INVITER_ROLES:
        raise Forbidden("Only trip owners and editors can invite members")
    return role


def require_owner(trip: Trip, user_id: uuid.UUID) -> None:
    if trip.owner_id != user_id:
        raise NotOwner()
