"""Invitation lifecycle across tokens, memberships and the inbox"""
from datetime import timedelta
import uuid
import pytest
from travelnest.core.config import settings
from travelnest.core.errors import (
    AlreadyMember, CannotRemoveOwner, EmailMismatch, Forbidden, InvitationAlreadyUsed,
    InvitationExpired, NotFound, NotOwner, ValidationFailed,
)
from travelnest.models.invitation_token import InvitationToken
from travelnest.models.notification import Notification
from travelnest.models.trip_member import TripMember
from travelnest.schemas.user import CurrentUser
from travelnest.services import invitation_workflow, membership_store, token_issuer
from conftest import token_from_link


def _notifications(db, user_id, trip_id):
    db.expire_all()
    return db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.trip_id == trip_id,
    ).order_by(Notification.created_at.asc()).all()


def _tokens(db, trip_id, email):
    db.expire_all()
    return db.query(InvitationToken).filter(
        InvitationToken.trip_id == trip_id,
        InvitationToken.email == email,
    ).all()


def _member(db, trip_id, user_id):
    db.expire_all()
    return membership_store.get(db, trip_id, user_id)


def _as_new_account(email, confirmed=True):
    """Caller who just registered: no profile row needed by the workflow itself."""
    return CurrentUser(id=uuid.uuid4(), email=email, email_confirmed=confirmed, full_name="New Person")


# -- invite ------------------------------------------------------------------

def test_invite_existing_user_creates_pending_member_and_notification(db, make_user, make_trip, sent_emails):
    owner = make_user(full_name="Olivia Owner")
    invitee = make_user(email="a@x.com")
    trip = make_trip(owner, title="Iceland")

    outcome = invitation_workflow.invite_by_email(db, trip.id, "A@X.com", "editor", owner.id)

    assert outcome.is_new_user is False
    assert outcome.email_sent is True
    assert outcome.member.status == "pending"
    assert outcome.member.role == "editor"

    member = _member(db, trip.id, invitee.id)
    assert member.joined_at is None

    notes = _notifications(db, invitee.id, trip.id)
    assert len(notes) == 1
    assert notes[0].status == "pending"
    assert notes[0].message == 'Olivia Owner invited you to join "Iceland"'
    assert notes[0].details["role"] == "editor"
    assert notes[0].details["invitation_token_id"] == str(outcome.token.id)

    assert len(sent_emails) == 1
    assert sent_emails[0]["to_email"] == "a@x.com"
    assert sent_emails[0]["is_new_user"] is False
    assert "?signup=true" not in sent_emails[0]["invitation_link"]
    assert token_from_link(sent_emails[0]["invitation_link"]) == outcome.token.token


def test_invite_new_user_issues_token_only(db, make_user, make_trip, sent_emails):
    owner = make_user()
    trip = make_trip(owner)

    outcome = invitation_workflow.invite_by_email(db, trip.id, "b@x.com", None, owner.id)

    assert outcome.is_new_user is True
    assert outcome.member is None
    assert outcome.token.role == "editor"
    assert db.query(TripMember).filter(TripMember.trip_id == trip.id).count() == 1
    assert db.query(Notification).count() == 0
    assert sent_emails[0]["invitation_link"].endswith("?signup=true")
    assert sent_emails[0]["invitation_link"].startswith(f"{settings.APP_URL.rstrip('/')}/invite/")


def test_invite_validation(db, make_user, make_trip, sent_emails):
    owner = make_user(email="owner@x.com")
    trip = make_trip(owner)

    with pytest.raises(ValidationFailed):
        invitation_workflow.invite_by_email(db, trip.id, "not-an-email", "editor", owner.id)
    with pytest.raises(ValidationFailed):
        invitation_workflow.invite_by_email(db, trip.id, "", "editor", owner.id)
    with pytest.raises(ValidationFailed):
        invitation_workflow.invite_by_email(db, trip.id, "c@x.com", "owner", owner.id)
    with pytest.raises(ValidationFailed):
        invitation_workflow.invite_by_email(db, trip.id, "Owner@X.com", "editor", owner.id)
    with pytest.raises(NotFound):
        invitation_workflow.invite_by_email(db, uuid.uuid4(), "c@x.com", "editor", owner.id)
    assert sent_emails == []


def test_only_owner_and_joined_editor_can_invite(db, make_user, make_trip, sent_emails):
    owner = make_user()
    editor = make_user()
    viewer = make_user()
    pending_editor = make_user()
    trip = make_trip(owner)
    for user, role in ((editor, "editor"), (viewer, "viewer"), (pending_editor, "editor")):
        membership_store.upsert_pending(db, trip.id, user.id, role, owner.id)
    membership_store.accept(db, trip.id, editor.id)
    membership_store.accept(db, trip.id, viewer.id)
    db.commit()

    outcome = invitation_workflow.invite_by_email(db, trip.id, "guest@x.com", "viewer", editor.id)
    assert outcome.token.invited_by == editor.id

    with pytest.raises(Forbidden):
        invitation_workflow.invite_by_email(db, trip.id, "guest2@x.com", "viewer", viewer.id)
    with pytest.raises(Forbidden):
        invitation_workflow.invite_by_email(db, trip.id, "guest3@x.com", "viewer", pending_editor.id)


def test_invite_joined_member_is_conflict(db, make_user, make_trip, sent_emails):
    owner = make_user()
    friend = make_user(email="friend@x.com")
    trip = make_trip(owner)
    membership_store.upsert_pending(db, trip.id, friend.id, "editor", owner.id)
    membership_store.accept(db, trip.id, friend.id)
    db.commit()

    with pytest.raises(AlreadyMember):
        invitation_workflow.invite_by_email(db, trip.id, "friend@x.com", "viewer", owner.id)
    assert _tokens(db, trip.id, "friend@x.com") == []


def test_email_failure_keeps_invitation(db, make_user, make_trip, monkeypatch):
    from travelnest.services.invitation_email import EmailResult

    monkeypatch.setattr(
        "travelnest.services.invitation_workflow.send_invitation_email",
        lambda **kwargs: EmailResult(success=False, error="provider down"),
    )
    owner = make_user()
    invitee = make_user(email="a@x.com")
    trip = make_trip(owner)

    outcome = invitation_workflow.invite_by_email(db, trip.id, "a@x.com", "editor", owner.id)

    assert outcome.email_sent is False
    assert _member(db, trip.id, invitee.id) is not None
    assert len(_notifications(db, invitee.id, trip.id)) == 1
    assert token_issuer.redeem(db, outcome.token.token) is not None


def test_store_failure_after_token_is_dependency_failure(db, make_user, make_trip, sent_emails, monkeypatch):
    from sqlalchemy.exc import OperationalError
    from travelnest.core.errors import DependencyFailure

    def store_down(*args, **kwargs):
        raise OperationalError("INSERT INTO trip_members", {}, Exception("db down"))

    monkeypatch.setattr(membership_store, "upsert_pending", store_down)
    owner = make_user()
    invitee = make_user(email="a@x.com")
    trip = make_trip(owner)

    with pytest.raises(DependencyFailure) as excinfo:
        invitation_workflow.invite_by_email(db, trip.id, "a@x.com", "editor", owner.id)

    assert excinfo.value.status_code == 503
    assert excinfo.value.reason == "dependency_failure"
    assert sent_emails == []
    assert _member(db, trip.id, invitee.id) is None
    assert _notifications(db, invitee.id, trip.id) == []
    # The committed token still works by link
    tokens = _tokens(db, trip.id, "a@x.com")
    assert len(tokens) == 1
    assert token_issuer.redeem(db, tokens[0].token).id == tokens[0].id


def test_resend_cooldown(db, make_user, make_trip, sent_emails, monkeypatch):
    monkeypatch.setattr(settings, "INVITE_RESEND_COOLDOWN_MINUTES", 60)
    owner = make_user()
    make_user(email="a@x.com")
    trip = make_trip(owner)

    invitation_workflow.invite_by_email(db, trip.id, "a@x.com", "editor", owner.id)
    with pytest.raises(ValidationFailed):
        invitation_workflow.invite_by_email(db, trip.id, "a@x.com", "viewer", owner.id)


# -- the re-invite then accept scenario -------------------------------------

def test_reinvite_replaces_token_and_notification_then_accept(db, make_user, make_trip, sent_emails):
    owner = make_user()
    a = make_user(email="a@x.com")
    trip = make_trip(owner)

    first = invitation_workflow.invite_by_email(db, trip.id, "a@x.com", "editor", owner.id)
    token_a = first.token.token
    n1 = _notifications(db, a.id, trip.id)[0]
    n1_id = n1.id

    second = invitation_workflow.invite_by_email(db, trip.id, "a@x.com", "viewer", owner.id)
    token_b = second.token.token

    with pytest.raises(NotFound):
        token_issuer.redeem(db, token_a)
    unused = [t for t in _tokens(db, trip.id, "a@x.com") if t.used_at is None]
    assert [t.token for t in unused] == [token_b]

    notes = {n.id: n for n in _notifications(db, a.id, trip.id)}
    assert notes[n1_id].status == "revoked"
    n2 = [n for n in notes.values() if n.id != n1_id][0]
    assert n2.status == "pending"
    assert n2.details["role"] == "viewer"

    result = invitation_workflow.accept_by_token(db, token_b, a.current)
    assert result.already_accepted is False
    assert result.trip_id == trip.id

    member = _member(db, trip.id, a.id)
    assert member.joined_at is not None
    assert member.role == "viewer"
    statuses = {n.id: n.status for n in _notifications(db, a.id, trip.id)}
    assert statuses[n2.id] == "accepted"
    assert statuses[n1_id] == "revoked"
    assert db.query(InvitationToken).filter(InvitationToken.token == token_b).one().used_at is not None


# -- new user signup scenario -----------------------------------------------

def test_signup_then_accept_twice(db, make_user, make_trip, sent_emails):
    owner = make_user(full_name="Olivia Owner")
    trip = make_trip(owner, title="Kyoto")
    outcome = invitation_workflow.invite_by_email(db, trip.id, "b@x.com", "viewer", owner.id)
    token_c = outcome.token.token

    b = make_user(email="b@x.com")

    signed = invitation_workflow.complete_signup(db, token_c, b.current)
    assert signed.already_accepted is False
    assert _member(db, trip.id, b.id).joined_at is None
    notes = _notifications(db, b.id, trip.id)
    assert len(notes) == 1
    assert notes[0].status == "pending"
    assert notes[0].message == 'Olivia Owner invited you to join "Kyoto"'
    # Token is still redeemable after signup
    assert token_issuer.redeem(db, token_c).used_at is None

    # Repeat signup does not duplicate the notification
    invitation_workflow.complete_signup(db, token_c, b.current)
    assert len(_notifications(db, b.id, trip.id)) == 1

    first = invitation_workflow.accept_by_token(db, token_c, b.current)
    assert first.already_accepted is False
    joined_at = _member(db, trip.id, b.id).joined_at
    assert joined_at is not None

    second = invitation_workflow.accept_by_token(db, token_c, b.current)
    assert second.already_accepted is True
    assert _member(db, trip.id, b.id).joined_at == joined_at
    assert db.query(TripMember).filter(TripMember.trip_id == trip.id, TripMember.user_id == b.id).count() == 1
    assert _notifications(db, b.id, trip.id)[0].status == "accepted"


def test_complete_signup_after_inbox_accept_reports_used_link(db, make_user, make_trip, sent_emails):
    owner = make_user()
    trip = make_trip(owner)
    outcome = invitation_workflow.invite_by_email(db, trip.id, "b@x.com", "viewer", owner.id)
    b = make_user(email="b@x.com")
    invitation_workflow.complete_signup(db, outcome.token.token, b.current)

    notification = _notifications(db, b.id, trip.id)[0]
    invitation_workflow.accept_by_notification(db, notification.id, b.current)

    # Accepting in the inbox consumed the link
    with pytest.raises(InvitationAlreadyUsed):
        invitation_workflow.complete_signup(db, outcome.token.token, b.current)


def test_accept_token_without_signup_step(db, make_user, make_trip, sent_emails):
    owner = make_user()
    trip = make_trip(owner)
    outcome = invitation_workflow.invite_by_email(db, trip.id, "b@x.com", "editor", owner.id)
    b = make_user(email="b@x.com")

    result = invitation_workflow.accept_by_token(db, outcome.token.token, b.current)

    assert result.already_accepted is False
    member = _member(db, trip.id, b.id)
    assert member.joined_at is not None
    assert member.role == "editor"


def test_token_redemption_guards(db, make_user, make_trip, sent_emails):
    owner = make_user()
    trip = make_trip(owner)
    outcome = invitation_workflow.invite_by_email(db, trip.id, "b@x.com", "editor", owner.id)
    value = outcome.token.token

    with pytest.raises(EmailMismatch) as exc_info:
        invitation_workflow.accept_by_token(db, value, _as_new_account("someone-else@x.com"))
    assert exc_info.value.status_code == 403

    with pytest.raises(Forbidden):
        invitation_workflow.complete_signup(db, value, _as_new_account("b@x.com", confirmed=False))
    with pytest.raises(Forbidden):
        invitation_workflow.accept_by_token(db, value, _as_new_account("b@x.com", confirmed=False))
    with pytest.raises(NotFound):
        invitation_workflow.accept_by_token(db, "bogus", _as_new_account("b@x.com"))


def test_expired_token_reports_expired_even_if_unused(db, make_user, make_trip):
    owner = make_user()
    trip = make_trip(owner)
    token = token_issuer.issue(db, trip.id, "b@x.com", "editor", owner.id, ttl=timedelta(seconds=-5))
    db.commit()
    b = make_user(email="b@x.com")

    with pytest.raises(InvitationExpired):
        invitation_workflow.accept_by_token(db, token.token, b.current)
    with pytest.raises(InvitationExpired):
        invitation_workflow.verify(db, token.token)


def test_used_token_by_pending_member_is_rejected(db, make_user, make_trip, sent_emails):
    owner = make_user()
    b = make_user(email="b@x.com")
    trip = make_trip(owner)
    outcome = invitation_workflow.invite_by_email(db, trip.id, "b@x.com", "editor", owner.id)
    token_issuer.mark_used(db, outcome.token.id)
    db.commit()

    with pytest.raises(InvitationAlreadyUsed):
        invitation_workflow.accept_by_token(db, outcome.token.token, b.current)


def test_verify_describes_invitation(db, make_user, make_trip, sent_emails):
    owner = make_user(full_name="Olivia Owner")
    trip = make_trip(owner, title="Patagonia")
    outcome = invitation_workflow.invite_by_email(db, trip.id, "new@x.com", "viewer", owner.id)

    verified = invitation_workflow.verify(db, outcome.token.token)

    assert verified.trip_title == "Patagonia"
    assert verified.inviter_name == "Olivia Owner"
    assert verified.is_new_user is True
    assert verified.token.role == "viewer"


# -- inbox accept / reject --------------------------------------------------

def test_accept_by_notification_is_idempotent_and_consumes_link(db, make_user, make_trip, sent_emails):
    owner = make_user()
    a = make_user(email="a@x.com")
    trip = make_trip(owner)
    outcome = invitation_workflow.invite_by_email(db, trip.id, "a@x.com", "editor", owner.id)
    notification_id = _notifications(db, a.id, trip.id)[0].id

    first = invitation_workflow.accept_by_notification(db, notification_id, a.current)
    second = invitation_workflow.accept_by_notification(db, notification_id, a.current)

    assert first.already_accepted is False
    assert second.already_accepted is True
    note = _notifications(db, a.id, trip.id)[0]
    assert note.status == "accepted"
    assert note.read is True
    # Link now reports used, and redeeming it as the same user is still a success
    again = invitation_workflow.accept_by_token(db, outcome.token.token, a.current)
    assert again.already_accepted is True


def test_accept_by_expired_notification_is_refused(db, make_user, make_trip, sent_emails):
    from travelnest.services import inbox_notifier

    owner = make_user()
    a = make_user(email="a@x.com")
    trip = make_trip(owner)
    invitation_workflow.invite_by_email(db, trip.id, "a@x.com", "editor", owner.id)
    notification_id = _notifications(db, a.id, trip.id)[0].id
    token = _tokens(db, trip.id, "a@x.com")[0]
    token.expires_at = token.created_at - timedelta(days=1)
    db.commit()

    assert inbox_notifier.expire_stale(db) == 1
    db.commit()

    with pytest.raises(InvitationExpired):
        invitation_workflow.accept_by_notification(db, notification_id, a.current)

    assert _member(db, trip.id, a.id).joined_at is None
    assert _notifications(db, a.id, trip.id)[0].status == "expired"


def test_accept_by_revoked_notification_is_refused(db, make_user, make_trip, sent_emails):
    owner = make_user()
    a = make_user(email="a@x.com")
    trip = make_trip(owner)
    invitation_workflow.invite_by_email(db, trip.id, "a@x.com", "editor", owner.id)
    old_id = _notifications(db, a.id, trip.id)[0].id
    invitation_workflow.invite_by_email(db, trip.id, "a@x.com", "viewer", owner.id)

    # The superseded notification must not accept the newer pending row
    with pytest.raises(ValidationFailed):
        invitation_workflow.accept_by_notification(db, old_id, a.current)
    assert _member(db, trip.id, a.id).joined_at is None

    new_id = [n.id for n in _notifications(db, a.id, trip.id) if n.id != old_id][0]
    result = invitation_workflow.accept_by_notification(db, new_id, a.current)
    assert result.already_accepted is False
    assert _member(db, trip.id, a.id).role == "viewer"


def test_notification_actions_check_ownership(db, make_user, make_trip, sent_emails):
    owner = make_user()
    a = make_user(email="a@x.com")
    trip = make_trip(owner)
    invitation_workflow.invite_by_email(db, trip.id, "a@x.com", "editor", owner.id)
    notification_id = _notifications(db, a.id, trip.id)[0].id

    with pytest.raises(Forbidden):
        invitation_workflow.accept_by_notification(db, notification_id, owner.current)
    with pytest.raises(Forbidden):
        invitation_workflow.reject_by_notification(db, notification_id, owner.current)
    with pytest.raises(NotFound):
        invitation_workflow.accept_by_notification(db, uuid.uuid4(), a.current)


def test_reject_pending_deletes_membership_and_link(db, make_user, make_trip, sent_emails):
    owner = make_user()
    a = make_user(email="a@x.com")
    trip = make_trip(owner)
    value = invitation_workflow.invite_by_email(db, trip.id, "a@x.com", "editor", owner.id).token.token
    notification_id = _notifications(db, a.id, trip.id)[0].id

    invitation_workflow.reject_by_notification(db, notification_id, a.current)

    assert _member(db, trip.id, a.id) is None
    note = _notifications(db, a.id, trip.id)[0]
    assert note.status == "rejected"
    assert note.read is True
    with pytest.raises(NotFound):
        token_issuer.redeem(db, value)
    # Accepting the rejected invite finds nothing to accept
    with pytest.raises(NotFound):
        invitation_workflow.accept_by_notification(db, notification_id, a.current)


def test_reject_after_joining_keeps_membership(db, make_user, make_trip, sent_emails):
    owner = make_user()
    a = make_user(email="a@x.com")
    trip = make_trip(owner)
    outcome = invitation_workflow.invite_by_email(db, trip.id, "a@x.com", "editor", owner.id)
    notification_id = _notifications(db, a.id, trip.id)[0].id
    invitation_workflow.accept_by_token(db, outcome.token.token, a.current)

    invitation_workflow.reject_by_notification(db, notification_id, a.current)

    assert _member(db, trip.id, a.id).joined_at is not None
    assert _notifications(db, a.id, trip.id)[0].status == "rejected"


# -- removal ----------------------------------------------------------------

def test_remove_pending_member_revokes_token_and_notification(db, make_user, make_trip, sent_emails):
    owner = make_user()
    a = make_user(email="a@x.com")
    trip = make_trip(owner)
    value = invitation_workflow.invite_by_email(db, trip.id, "a@x.com", "editor", owner.id).token.token

    removed = invitation_workflow.remove_member(db, trip.id, a.id, requested_by=owner.id)

    assert removed.was_pending is True
    assert removed.removed.user_id == a.id
    assert _member(db, trip.id, a.id) is None
    assert _notifications(db, a.id, trip.id)[0].status == "revoked"
    assert [t for t in _tokens(db, trip.id, "a@x.com") if t.used_at is None] == []
    with pytest.raises(NotFound):
        invitation_workflow.accept_by_token(db, value, a.current)


def test_remove_joined_member_leaves_tokens(db, make_user, make_trip, sent_emails):
    owner = make_user()
    a = make_user(email="a@x.com")
    trip = make_trip(owner)
    outcome = invitation_workflow.invite_by_email(db, trip.id, "a@x.com", "editor", owner.id)
    invitation_workflow.accept_by_token(db, outcome.token.token, a.current)
    # A later invite to a different trip must be untouched too
    other_trip = make_trip(owner, title="Other")
    other = invitation_workflow.invite_by_email(db, other_trip.id, "a@x.com", "viewer", owner.id)

    removed = invitation_workflow.remove_member(db, trip.id, a.id, requested_by=owner.id)

    assert removed.was_pending is False
    assert len(_tokens(db, trip.id, "a@x.com")) == 1
    assert token_issuer.redeem(db, other.token.token) is not None


def test_owner_can_never_be_removed(db, make_user, make_trip, sent_emails):
    owner = make_user()
    editor = make_user(email="e@x.com")
    trip = make_trip(owner)
    outcome = invitation_workflow.invite_by_email(db, trip.id, "e@x.com", "editor", owner.id)
    invitation_workflow.accept_by_token(db, outcome.token.token, editor.current)

    with pytest.raises(CannotRemoveOwner):
        invitation_workflow.remove_member(db, trip.id, owner.id, requested_by=owner.id)
    with pytest.raises(NotOwner):
        invitation_workflow.remove_member(db, trip.id, owner.id, requested_by=editor.id)
    with pytest.raises(NotOwner):
        invitation_workflow.remove_member(db, trip.id, editor.id, requested_by=editor.id)
    assert _member(db, trip.id, owner.id) is not None
