from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from uuid import UUID
from travelnest.db.session import get_db
from travelnest.api.deps import get_current_user
from travelnest.core.rate_limit import rate_limit
from travelnest.schemas.user import CurrentUser
from travelnest.schemas.invitation import (
    InvitationTokenRequest,
    InvitationActionResponse,
    InviteVerifyResponse,
)
from travelnest.services import invitation_workflow

router = APIRouter()


def _action_response(outcome) -> InvitationActionResponse:
    return InvitationActionResponse(
        success=True,
        message=outcome.message,
        trip_id=outcome.trip_id,
        already_accepted=outcome.already_accepted,
    )


@router.get("/verify/{token}", response_model=InviteVerifyResponse)
@rate_limit(max_requests=30, window_seconds=300)
def verify_invitation(
    token: str,
    request: Request,
    db: Session = Depends(get_db),
):
    """
    Public endpoint for the invite landing page: who invited you, to what,
    and whether you need to sign up first. No authentication.
    """
    outcome = invitation_workflow.verify(db, token)
    return InviteVerifyResponse(
        valid=True,
        trip_id=outcome.token.trip_id,
        trip_title=outcome.trip_title,
        inviter_name=outcome.inviter_name,
        role=outcome.token.role,
        email=outcome.token.email,
        expires_at=outcome.token.expires_at,
        is_new_user=outcome.is_new_user,
    )


@router.post("/complete-signup", response_model=InvitationActionResponse)
@rate_limit(max_requests=10, window_seconds=900)
def complete_signup(
    body: InvitationTokenRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """After signing up from an invite link: create the pending membership and inbox notification."""
    return _action_response(invitation_workflow.complete_signup(db, body.token, current_user))


@router.post("/accept-token", response_model=InvitationActionResponse)
@rate_limit(max_requests=10, window_seconds=900)
def accept_invitation_token(
    body: InvitationTokenRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return _action_response(invitation_workflow.accept_by_token(db, body.token, current_user))


@router.post("/{notification_id}/accept", response_model=InvitationActionResponse)
def accept_invitation(
    notification_id: UUID,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return _action_response(invitation_workflow.accept_by_notification(db, notification_id, current_user))


@router.post("/{notification_id}/reject", response_model=InvitationActionResponse)
def reject_invitation(
    notification_id: UUID,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return _action_response(invitation_workflow.reject_by_notification(db, notification_id, current_user))
