from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from datetime import datetime
from uuid import UUID
import logging
from travelnest.db.session import get_db
from travelnest.api.deps import get_current_user
from travelnest.core.errors import ValidationFailed
from travelnest.core.rate_limit import rate_limit
from travelnest.models.profile import Profile
from travelnest.models.trip import Trip, TripPrivacy
from travelnest.schemas.user import CurrentUser
from travelnest.schemas.trip import TripCreate, TripUpdate, TripResponse
from travelnest.schemas.member import MemberResponse, MemberListResponse, RemoveMemberResponse
from travelnest.schemas.invitation import InviteMemberRequest, InviteMemberResponse
from travelnest.services import access_policy, membership_store, invitation_workflow

logger = logging.getLogger(__name__)

router = APIRouter()

PRIVACY_VALUES = [p.value for p in TripPrivacy]


def _check_privacy(privacy: str) -> str:
    privacy = (privacy or "").strip().lower()
    if privacy not in PRIVACY_VALUES:
        raise ValidationFailed(f"Invalid privacy. Must be one of: {', '.join(PRIVACY_VALUES)}")
    return privacy


def _trip_response(trip: Trip, user_role) -> TripResponse:
    response = TripResponse.model_validate(trip)
    response.user_role = user_role
    return response


@router.post("", response_model=TripResponse, status_code=status.HTTP_201_CREATED)
def create_trip(
    trip_in: TripCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Create a trip. The creator becomes its owner with a joined member row."""
    title = (trip_in.title or "").strip()
    if not title:
        raise ValidationFailed("Title is required")
    trip = Trip(
        owner_id=current_user.id,
        title=title,
        description=trip_in.description,
        privacy=_check_privacy(trip_in.privacy or TripPrivacy.PRIVATE.value),
    )
    db.add(trip)
    db.flush()
    membership_store.ensure_owner(db, trip.id, current_user.id)
    db.commit()
    db.refresh(trip)
    logger.info(f"[TRIPS] User {current_user.id} created trip {trip.id}")
    return _trip_response(trip, "owner")


@router.get("/{trip_id}", response_model=TripResponse)
def get_trip(
    trip_id: UUID,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    trip = access_policy.get_trip(db, trip_id)
    access_policy.require_view(db, trip, current_user.id)
    return _trip_response(trip, access_policy.get_role(db, trip, current_user.id))


@router.put("/{trip_id}", response_model=TripResponse)
def update_trip(
    trip_id: UUID,
    trip_in: TripUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Owner only."""
    trip = access_policy.get_trip(db, trip_id)
    access_policy.require_owner(trip, current_user.id)

    update_data = trip_in.model_dump(exclude_unset=True)
    if "title" in update_data:
        title = (update_data["title"] or "").strip()
        if not title:
            raise ValidationFailed("Title cannot be empty")
        trip.title = title
    if "description" in update_data:
        trip.description = update_data["description"]
    if update_data.get("privacy") is not None:
        trip.privacy = _check_privacy(update_data["privacy"])
    trip.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(trip)
    return _trip_response(trip, "owner")


@router.get("/{trip_id}/members", response_model=MemberListResponse)
def list_members(
    trip_id: UUID,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Joined and pending members with their profiles, plus the caller's role."""
    trip = access_policy.get_trip(db, trip_id)
    access_policy.require_view(db, trip, current_user.id)

    members = membership_store.list_by_trip(db, trip.id)
    user_ids = [m.user_id for m in members]
    profiles = {}
    if user_ids:
        profiles = {p.id: p for p in db.query(Profile).filter(Profile.id.in_(user_ids)).all()}

    return MemberListResponse(
        members=[MemberResponse.from_member(m, profiles.get(m.user_id)) for m in members],
        user_role=access_policy.get_role(db, trip, current_user.id),
    )


@router.post("/{trip_id}/members/invite", response_model=InviteMemberResponse, status_code=status.HTTP_201_CREATED)
@rate_limit(max_requests=20, window_seconds=900)
def invite_member(
    trip_id: UUID,
    body: InviteMemberRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """
    Invite someone by email. Existing accounts get a pending membership and an
    inbox notification; everyone gets an emailed link. Email failure is reported
    in email_sent, the invitation itself still stands.
    """
    outcome = invitation_workflow.invite_by_email(
        db,
        trip_id=trip_id,
        email=body.email,
        role=body.role,
        inviter_id=current_user.id,
    )
    return InviteMemberResponse(
        success=True,
        message=outcome.message,
        is_new_user=outcome.is_new_user,
        email_sent=outcome.email_sent,
        token_expires_at=outcome.token.expires_at,
        member=outcome.member,
    )


@router.delete("/{trip_id}/members/{user_id}", response_model=RemoveMemberResponse)
def remove_member(
    trip_id: UUID,
    user_id: UUID,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Owner removes a member, joined or still pending."""
    outcome = invitation_workflow.remove_member(db, trip_id, user_id, requested_by=current_user.id)
    logger.info(f"[MEMBERS] User {user_id} removed from trip {trip_id} by {current_user.id} (was_pending={outcome.was_pending})")
    return RemoveMemberResponse(success=True, was_pending=outcome.was_pending, removed_member=outcome.removed)
