from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List
from uuid import UUID
from travelnest.db.session import get_db
from travelnest.api.deps import get_current_user
from travelnest.models.notification import Notification
from travelnest.models.profile import Profile
from travelnest.models.trip import Trip
from travelnest.schemas.user import CurrentUser, ProfileSummary
from travelnest.schemas.trip import TripSummary
from travelnest.schemas.notification import NotificationResponse, NotificationListResponse, MarkReadResponse
from travelnest.services import inbox_notifier

router = APIRouter()


def _to_responses(db: Session, notifications: List[Notification]) -> List[NotificationResponse]:
    """Attach trip and actor summaries with one query each."""
    trip_ids = {n.trip_id for n in notifications if n.trip_id}
    actor_ids = {n.actor_id for n in notifications if n.actor_id}
    trips = {}
    actors = {}
    if trip_ids:
        trips = {t.id: t for t in db.query(Trip).filter(Trip.id.in_(trip_ids)).all()}
    if actor_ids:
        actors = {p.id: p for p in db.query(Profile).filter(Profile.id.in_(actor_ids)).all()}

    result = []
    for n in notifications:
        trip = trips.get(n.trip_id)
        actor = actors.get(n.actor_id)
        result.append(NotificationResponse(
            id=n.id,
            type=n.type,
            trip_id=n.trip_id,
            actor_id=n.actor_id,
            message=n.message,
            read=bool(n.read),
            status=n.status,
            metadata=n.details or {},
            created_at=n.created_at,
            trip=TripSummary.model_validate(trip) if trip else None,
            actor=ProfileSummary.model_validate(actor) if actor else None,
        ))
    return result


@router.get("", response_model=NotificationListResponse)
def list_notifications(
    unread_only: bool = Query(False),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    notifications = inbox_notifier.list_for_user(db, current_user.id, unread_only=unread_only)
    return NotificationListResponse(
        notifications=_to_responses(db, notifications),
        unread_count=inbox_notifier.unread_count(db, current_user.id),
    )


@router.put("/{notification_id}/read", response_model=MarkReadResponse)
def mark_notification_read(
    notification_id: UUID,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    notification = inbox_notifier.mark_read(db, notification_id, current_user.id)
    db.commit()
    db.refresh(notification)
    return MarkReadResponse(success=True, notification=_to_responses(db, [notification])[0])
