"""
Invitation token issuance and redemption.

Tokens are opaque 256-bit random strings. Only one unused token may exist per
(trip, email); issuing a new one deletes the previous unused token so the old
link stops working.
"""
from sqlalchemy.orm import Session
from sqlalchemy import func
from datetime import datetime, timedelta
from typing import Optional
import logging
import secrets
import uuid
from travelnest.core.config import settings
from travelnest.core.errors import NotFound, InvitationExpired, InvitationAlreadyUsed
from travelnest.models.invitation_token import InvitationToken

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32  # 256 bits of entropy


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def generate_token() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


def invalidate_unused(db: Session, trip_id: uuid.UUID, email: str) -> int:
    """Delete every unused token for (trip, email). Returns how many were removed."""
    deleted = db.query(InvitationToken).filter(
        InvitationToken.trip_id == trip_id,
        func.lower(InvitationToken.email) == normalize_email(email),
        InvitationToken.used_at.is_(None),
    ).delete(synchronize_session=False)
    if deleted:
        logger.info(f"[INVITE] Invalidated {deleted} unused token(s) for trip {trip_id} / {normalize_email(email)}")
    return deleted


def issue(
    db: Session,
    trip_id: uuid.UUID,
    email: str,
    role: str,
    issuer_id: uuid.UUID,
    ttl: Optional[timedelta] = None,
) -> InvitationToken:
    """
    Mint a fresh token for (trip, email), replacing any unused one.
    Flushes but does not commit; the caller owns the transaction.
    """
    email_normalized = normalize_email(email)
    if ttl is None:
        ttl = timedelta(days=settings.INVITATION_EXPIRES_DAYS)

    # Bulk delete runs immediately, ahead of the insert, so the
    # one-unused-token-per-invitee index never sees two live rows
    invalidate_unused(db, trip_id, email_normalized)

    now = datetime.utcnow()
    token = InvitationToken(
        trip_id=trip_id,
        email=email_normalized,
        role=role,
        token=generate_token(),
        invited_by=issuer_id,
        expires_at=now + ttl,
        used_at=None,
        created_at=now,
    )
    db.add(token)
    db.flush()
    return token


def get_by_value(db: Session, token_value: str) -> Optional[InvitationToken]:
    value = (token_value or "").strip()
    if not value:
        return None
    return db.query(InvitationToken).filter(InvitationToken.token == value).first()


def redeem(db: Session, token_value: str, now: Optional[datetime] = None) -> InvitationToken:
    """
    Look up a token for redemption.

    Raises NotFound, InvitationExpired or InvitationAlreadyUsed. Expiry is
    checked before use, so an expired token that was also used reports expired.
    """
    token = get_by_value(db, token_value)
    if token is None:
        raise NotFound("Invitation not found")
    if token.is_expired(now):
        raise InvitationExpired()
    if token.used_at is not None:
        raise InvitationAlreadyUsed(token=token)
    return token


def mark_used(db: Session, token_id: uuid.UUID) -> bool:
    """
    Consume a token. Single conditional update on used_at IS NULL.
    Returns False when someone else already consumed it; callers treat
    that as a lost race, not an error.
    """
    updated = db.query(InvitationToken).filter(
        InvitationToken.id == token_id,
        InvitationToken.used_at.is_(None),
    ).update({InvitationToken.used_at: datetime.utcnow()}, synchronize_session=False)
    if not updated:
        logger.info(f"[INVITE] Token {token_id} was already used")
    return bool(updated)


def latest_unused(db: Session, trip_id: uuid.UUID, email: str) -> Optional[InvitationToken]:
    return db.query(InvitationToken).filter(
        InvitationToken.trip_id == trip_id,
        func.lower(InvitationToken.email) == normalize_email(email),
        InvitationToken.used_at.is_(None),
    ).order_by(InvitationToken.created_at.desc()).first()


def consume_unused(db: Session, trip_id: uuid.UUID, email: str) -> int:
    """Mark every unused token for (trip, email) as used. Returns the count."""
    return db.query(InvitationToken).filter(
        InvitationToken.trip_id == trip_id,
        func.lower(InvitationToken.email) == normalize_email(email),
        InvitationToken.used_at.is_(None),
    ).update({InvitationToken.used_at: datetime.utcnow()}, synchronize_session=False)


def purge_expired(db: Session, now: Optional[datetime] = None) -> int:
    """Delete expired tokens that were never used."""
    now = now or datetime.utcnow()
    return db.query(InvitationToken).filter(
        InvitationToken.used_at.is_(None),
        InvitationToken.expires_at < now,
    ).delete(synchronize_session=False)
