"""
Trip invitation lifecycle.

Coordinates token_issuer, membership_store and inbox_notifier:

    NoInvite -> TokenIssued -> MemberPending -> Accepted
                            +-> Rejected | Revoked | Expired

Invites reach people two ways: an in-app inbox notification (only possible
once the invitee has an account) and an emailed token link. Whichever channel
is used, accepting is idempotent and removal/rejection clears the other one.

Every function commits its own work. Steps are ordered so that a failure part
way leaves something that can be re-driven by repeating the call: the token is
committed before membership and inbox rows are touched, and email delivery
runs last and never rolls anything back.
"""
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import func
from datetime import datetime, timedelta
from typing import Optional
import logging
import re
import uuid
from travelnest.core.config import settings
from travelnest.core.errors import (
    AlreadyMember, DependencyFailure, EmailMismatch, Forbidden, InvitationAlreadyUsed,
    InvitationExpired, NotFound, ValidationFailed,
)
from travelnest.models.invitation_token import InvitationToken
from travelnest.models.notification import Notification, NotificationStatus, NotificationType
from travelnest.models.profile import Profile
from travelnest.models.trip import Trip
from travelnest.models.trip_member import TripRole
from travelnest.schemas.member import MemberResponse
from travelnest.schemas.user import CurrentUser
from travelnest.services import access_policy, inbox_notifier, membership_store, token_issuer
from travelnest.services.invitation_email import send_invitation_email

logger = logging.getLogger(__name__)

INVITABLE_ROLES = (TripRole.EDITOR.value, TripRole.VIEWER.value)
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
TRIP_INVITE = NotificationType.TRIP_INVITE.value


class InviteOutcome:
    def __init__(
        self,
        token: InvitationToken,
        is_new_user: bool,
        email_sent: bool,
        member: Optional[MemberResponse] = None,
    ):
        self.token = token
        self.is_new_user = is_new_user
        self.email_sent = email_sent
        self.member = member

    @property
    def message(self) -> str:
        if self.is_new_user:
            return "Invitation email sent. They'll need to sign up first."
        return "Invitation sent successfully"


class AcceptOutcome:
    def __init__(self, trip_id: uuid.UUID, message: str, already_accepted: bool = False):
        self.trip_id = trip_id
        self.message = message
        self.already_accepted = already_accepted


class RemoveOutcome:
    def __init__(self, removed: MemberResponse, was_pending: bool):
        self.removed = removed
        self.was_pending = was_pending


class VerifyOutcome:
    def __init__(self, token: InvitationToken, trip_title: str, inviter_name: str, is_new_user: bool):
        self.token = token
        self.trip_title = trip_title
        self.inviter_name = inviter_name
        self.is_new_user = is_new_user


def _find_profile_by_email(db: Session, email: str) -> Optional[Profile]:
    return db.query(Profile).filter(func.lower(Profile.email) == token_issuer.normalize_email(email)).first()


def _display_name(profile: Optional[Profile]) -> str:
    if profile is not None and profile.full_name:
        return profile.full_name
    return "Someone"


def _trip_title(trip: Optional[Trip]) -> str:
    if trip is not None and trip.title:
        return trip.title
    return "a trip"


def _invite_message(inviter_name: str, trip_title: str) -> str:
    return f'{inviter_name} invited you to join "{trip_title}"'


def _invitation_link(token_value: str, is_new_user: bool) -> str:
    base = (settings.APP_URL or "http://localhost:3000").rstrip("/")
    link = f"{base}/invite/{token_value}"
    if is_new_user:
        link += "?signup=true"
    return link


def _require_confirmed_email(user: CurrentUser) -> None:
    if not user.email_confirmed:
        raise Forbidden("Please confirm your email address before accepting invitations")


def _require_matching_email(user: CurrentUser, token: InvitationToken) -> None:
    if token_issuer.normalize_email(user.email) != token_issuer.normalize_email(token.email):
        raise EmailMismatch()


def _post_invite_notification(
    db: Session,
    user_id: uuid.UUID,
    trip: Trip,
    inviter: Optional[Profile],
    token: InvitationToken,
) -> Notification:
    """Clear stale invites for this user/trip, then post the new pending one."""
    trip_title = _trip_title(trip)
    inbox_notifier.revoke_pending(db, user_id, trip.id, TRIP_INVITE)
    return inbox_notifier.post(
        db,
        user_id=user_id,
        type=TRIP_INVITE,
        trip_id=trip.id,
        actor_id=token.invited_by,
        message=_invite_message(_display_name(inviter), trip_title),
        metadata={
            "role": token.role,
            "trip_title": trip_title,
            "invitation_token_id": str(token.id),
        },
    )


def _get_invite_notification(db: Session, notification_id: uuid.UUID, user: CurrentUser, action: str) -> Notification:
    notification = inbox_notifier.get(db, notification_id)
    if notification is None:
        raise NotFound("Invitation not found")
    if notification.user_id != user.id:
        raise Forbidden(f"Not authorized to {action} this invitation")
    if notification.type != TRIP_INVITE or notification.trip_id is None:
        raise ValidationFailed("Invalid invitation type")
    return notification


def invite_by_email(
    db: Session,
    trip_id: uuid.UUID,
    email: str,
    role: Optional[str],
    inviter_id: uuid.UUID,
) -> InviteOutcome:
    """
    Invite someone to a trip by email.

    Existing account: issue token, upsert a pending membership, replace any
    pending inbox notification, then email the link.
    No account yet: issue token and email the signup link only; membership and
    notification are created by complete_signup.
    """
    email_normalized = token_issuer.normalize_email(email)
    if not email_normalized:
        raise ValidationFailed("Email is required")
    if not EMAIL_RE.match(email_normalized):
        raise ValidationFailed("Invalid email address")
    role = (role or TripRole.EDITOR.value).strip().lower()
    if role not in INVITABLE_ROLES:
        raise ValidationFailed("Invalid role. Must be 'editor' or 'viewer'")

    trip = access_policy.get_trip(db, trip_id)
    access_policy.require_invite(db, trip, inviter_id)

    inviter = db.query(Profile).filter(Profile.id == inviter_id).first()
    if inviter is not None and token_issuer.normalize_email(inviter.email) == email_normalized:
        raise ValidationFailed("You cannot invite yourself")

    invitee = _find_profile_by_email(db, email_normalized)
    if invitee is not None:
        existing = membership_store.get(db, trip.id, invitee.id)
        if existing is not None and existing.joined_at is not None:
            raise AlreadyMember()
        if existing is not None and settings.INVITE_RESEND_COOLDOWN_MINUTES > 0:
            recent = token_issuer.latest_unused(db, trip.id, email_normalized)
            cooldown = timedelta(minutes=settings.INVITE_RESEND_COOLDOWN_MINUTES)
            if recent is not None and datetime.utcnow() - recent.created_at < cooldown:
                raise ValidationFailed("An invitation was already sent recently. Please wait before sending another.")

    # Step 1: the token stands on its own, commit it first
    token = token_issuer.issue(db, trip.id, email_normalized, role, inviter_id)
    token_id = token.id
    db.commit()
    logger.info(f"[INVITE] Issued token {token.id} for {email_normalized} on trip {trip.id} (existing_user={invitee is not None})")

    # Step 2: membership + inbox, only possible for existing accounts
    member_response = None
    if invitee is not None:
        try:
            member = membership_store.upsert_pending(db, trip.id, invitee.id, role, inviter_id)
            _post_invite_notification(db, invitee.id, trip, inviter, token)
            member_response = MemberResponse.from_member(member, invitee)
            db.commit()
        except AlreadyMember:
            # Accepted through another channel in the meantime; drop the token we just minted
            db.rollback()
            token_issuer.invalidate_unused(db, trip.id, email_normalized)
            db.commit()
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception(f"[INVITE] Failed to record pending membership for {email_normalized} on trip {trip_id}; token {token_id} stays valid")
            raise DependencyFailure("Could not record the invitation. Please try again.") from exc

    # Step 3: email, best effort
    is_new_user = invitee is None
    result = send_invitation_email(
        to_email=email_normalized,
        inviter_name=_display_name(inviter),
        trip_title=_trip_title(trip),
        invitation_link=_invitation_link(token.token, is_new_user),
        role=role,
        is_new_user=is_new_user,
        metadata={"trip_id": str(trip.id), "invitation_token_id": str(token.id)},
    )
    if not result.success:
        logger.warning(f"[INVITE] Email to {email_normalized} failed: {result.error}. Invitation remains valid by link.")

    return InviteOutcome(token=token, is_new_user=is_new_user, email_sent=result.success, member=member_response)


def verify(db: Session, token_value: str) -> VerifyOutcome:
    """Public lookup behind the invite landing page."""
    token = token_issuer.redeem(db, token_value)
    trip = db.query(Trip).filter(Trip.id == token.trip_id).first()
    inviter = db.query(Profile).filter(Profile.id == token.invited_by).first()
    invitee = _find_profile_by_email(db, token.email)
    return VerifyOutcome(
        token=token,
        trip_title=_trip_title(trip),
        inviter_name=_display_name(inviter),
        is_new_user=invitee is None,
    )


def complete_signup(db: Session, token_value: str, user: CurrentUser) -> AcceptOutcome:
    """
    Attach a freshly registered account to the invitation it signed up from.
    Creates the pending membership and the inbox notification. The token is
    left unused; accepting is a separate step. Safe to call repeatedly.
    """
    _require_confirmed_email(user)
    token = token_issuer.redeem(db, token_value)
    _require_matching_email(user, token)
    trip_id = token.trip_id

    try:
        membership_store.upsert_pending(db, trip_id, user.id, token.role, token.invited_by)
    except AlreadyMember:
        logger.info(f"[INVITE] complete-signup for user {user.id}: already a member of trip {trip_id}")
        return AcceptOutcome(trip_id, "You are already a member of this trip", already_accepted=True)

    existing = db.query(Notification).filter(
        Notification.user_id == user.id,
        Notification.trip_id == trip_id,
        Notification.type == TRIP_INVITE,
        Notification.status == NotificationStatus.PENDING.value,
    ).all()
    if not any((n.details or {}).get("invitation_token_id") == str(token.id) for n in existing):
        trip = db.query(Trip).filter(Trip.id == trip_id).first()
        inviter = db.query(Profile).filter(Profile.id == token.invited_by).first()
        _post_invite_notification(db, user.id, trip, inviter, token)

    db.commit()
    return AcceptOutcome(trip_id, "Membership created successfully")


def accept_by_token(db: Session, token_value: str, user: CurrentUser) -> AcceptOutcome:
    """
    Accept through the emailed link. Repeating the call after success returns
    success again without touching state.
    """
    _require_confirmed_email(user)
    already_used = None
    try:
        token = token_issuer.redeem(db, token_value)
    except InvitationAlreadyUsed as exc:
        token = exc.token
        already_used = exc
    _require_matching_email(user, token)
    trip_id = token.trip_id

    member = membership_store.get(db, trip_id, user.id)
    if already_used is not None:
        if member is not None and member.joined_at is not None:
            return AcceptOutcome(trip_id, "Invitation already accepted", already_accepted=True)
        raise already_used

    if member is None:
        # Account existed but never went through complete-signup
        member = membership_store.upsert_pending(db, trip_id, user.id, token.role, token.invited_by)
    was_joined = member.joined_at is not None

    membership_store.accept(db, trip_id, user.id)
    if not token_issuer.mark_used(db, token.id):
        logger.info(f"[INVITE] Token {token.id} consumed concurrently by user {user.id}")
    inbox_notifier.resolve_by_subject(db, user.id, trip_id, TRIP_INVITE, NotificationStatus.ACCEPTED.value)
    db.commit()

    if was_joined:
        return AcceptOutcome(trip_id, "Invitation already accepted", already_accepted=True)
    logger.info(f"[INVITE] User {user.id} joined trip {trip_id} via token {token.id}")
    return AcceptOutcome(trip_id, "Invitation accepted successfully")


def accept_by_notification(db: Session, notification_id: uuid.UUID, user: CurrentUser) -> AcceptOutcome:
    """
    Accept from the in-app inbox. Expired and revoked invites are terminal:
    the pending row they point at may already belong to a newer invite.
    """
    notification = _get_invite_notification(db, notification_id, user, "accept")
    trip_id = notification.trip_id
    if notification.status == NotificationStatus.EXPIRED.value:
        raise InvitationExpired()
    if notification.status == NotificationStatus.REVOKED.value:
        raise ValidationFailed("This invitation was withdrawn or replaced by a newer one")

    member = membership_store.get(db, trip_id, user.id)
    if member is None:
        raise NotFound("Membership not found. The invitation may have been revoked.")
    was_joined = member.joined_at is not None

    membership_store.accept(db, trip_id, user.id)
    # The emailed link for this invite must not stay redeemable
    token_issuer.consume_unused(db, trip_id, user.email)
    inbox_notifier.resolve_by_subject(db, user.id, trip_id, TRIP_INVITE, NotificationStatus.ACCEPTED.value)
    notification.read = True
    db.commit()

    if was_joined:
        return AcceptOutcome(trip_id, "Invitation already accepted", already_accepted=True)
    logger.info(f"[INVITE] User {user.id} joined trip {trip_id} via notification {notification_id}")
    return AcceptOutcome(trip_id, "Invitation accepted successfully")


def reject_by_notification(db: Session, notification_id: uuid.UUID, user: CurrentUser) -> AcceptOutcome:
    """
    Decline from the in-app inbox. A pending membership is deleted; a joined
    one is left alone (rejecting cannot un-join) and only the notification
    is marked rejected for history.
    """
    notification = _get_invite_notification(db, notification_id, user, "reject")
    trip_id = notification.trip_id

    inbox_notifier.resolve(db, notification.id, NotificationStatus.REJECTED.value)

    member = membership_store.get(db, trip_id, user.id)
    if member is not None and member.joined_at is not None:
        logger.info(f"[INVITE] User {user.id} rejected an invite to trip {trip_id} they already joined; membership kept")
    else:
        if membership_store.delete_pending(db, trip_id, user.id):
            logger.info(f"[INVITE] Pending membership of user {user.id} on trip {trip_id} removed after rejection")
        token_issuer.invalidate_unused(db, trip_id, user.email)
        # Any other invite still pending for this trip goes with it
        inbox_notifier.revoke_pending(db, user.id, trip_id, TRIP_INVITE)

    notification.read = True
    db.commit()
    return AcceptOutcome(trip_id, "Invitation rejected successfully")


def remove_member(db: Session, trip_id: uuid.UUID, user_id: uuid.UUID, requested_by: uuid.UUID) -> RemoveOutcome:
    """
    Owner removes a member. If they had not accepted yet, their pending
    notifications are revoked and their unused link is invalidated.
    Tokens of joined members are left alone.
    """
    trip = access_policy.get_trip(db, trip_id)
    removed = membership_store.remove(db, trip, user_id, requested_by)
    profile = db.query(Profile).filter(Profile.id == user_id).first()
    was_pending = removed.is_pending
    snapshot = MemberResponse.from_member(removed, profile)

    if was_pending:
        inbox_notifier.revoke_pending(db, user_id, trip.id, TRIP_INVITE)
        if profile is not None:
            token_issuer.invalidate_unused(db, trip.id, profile.email)
        else:
            logger.warning(f"[MEMBERS] No profile for removed user {user_id}; cannot resolve email to invalidate tokens")

    db.commit()
    return RemoveOutcome(removed=snapshot, was_pending=was_pending)
