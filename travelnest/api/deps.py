from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from typing import Optional
from datetime import datetime
import logging
import uuid
from travelnest.db.session import get_db
from travelnest.core.errors import Unauthenticated
from travelnest.core.security import decode_access_token
from travelnest.models.profile import Profile
from travelnest.schemas.user import CurrentUser

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def _claims_to_user(payload: dict) -> CurrentUser:
    user_id_from_token: Optional[str] = payload.get("sub")
    email: Optional[str] = payload.get("email")
    if not user_id_from_token or not email:
        raise Unauthenticated("Invalid authentication credentials")
    try:
        user_id = uuid.UUID(str(user_id_from_token))
    except (ValueError, TypeError):
        raise Unauthenticated("Invalid authentication credentials")

    metadata = payload.get("user_metadata") or {}
    return CurrentUser(
        id=user_id,
        email=email.strip().lower(),
        email_confirmed=bool(payload.get("email_confirmed")),
        full_name=payload.get("name") or metadata.get("full_name"),
    )


def _sync_profile(db: Session, user: CurrentUser) -> None:
    """
    Just-in-time profile provisioning. The identity provider owns accounts;
    we keep a local row so invitations can tell existing users from new ones.
    """
    profile = db.query(Profile).filter(Profile.id == user.id).first()
    if profile is None:
        profile = Profile(id=user.id, email=user.email, full_name=user.full_name)
        db.add(profile)
    elif profile.email != user.email or (user.full_name and profile.full_name != user.full_name):
        profile.email = user.email
        profile.full_name = user.full_name or profile.full_name
        profile.updated_at = datetime.utcnow()
    else:
        return
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning(f"[AUTH] Could not sync profile for user {user.id}: email {user.email} belongs to another profile")


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> CurrentUser:
    """Resolve the bearer token into the calling user. 401 if absent or invalid."""
    if credentials is None or not credentials.credentials:
        raise Unauthenticated()
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise Unauthenticated("Invalid authentication credentials")
    user = _claims_to_user(payload)
    _sync_profile(db, user)
    return user
