from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from datetime import datetime
from uuid import UUID
from travelnest.schemas.trip import TripSummary
from travelnest.schemas.user import ProfileSummary


class NotificationResponse(BaseModel):
    id: UUID
    type: str
    trip_id: Optional[UUID] = None
    actor_id: Optional[UUID] = None
    message: Optional[str] = None
    read: bool
    status: str
    metadata: Dict[str, Any] = {}
    created_at: datetime
    trip: Optional[TripSummary] = None
    actor: Optional[ProfileSummary] = None


class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    unread_count: int


class MarkReadResponse(BaseModel):
    success: bool = True
    notification: NotificationResponse
