from travelnest.models.profile import Profile
from travelnest.models.trip import Trip, TripPrivacy
from travelnest.models.trip_member import TripMember, TripRole
from travelnest.models.invitation_token import InvitationToken
from travelnest.models.notification import Notification, NotificationType, NotificationStatus

__all__ = [
    "Profile", "Trip", "TripPrivacy", "TripMember", "TripRole",
    "InvitationToken", "Notification", "NotificationType", "NotificationStatus",
]
