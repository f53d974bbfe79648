from travelnest.schemas.user import CurrentUser, ProfileSummary
from travelnest.schemas.trip import TripCreate, TripUpdate, TripResponse, TripSummary
from travelnest.schemas.member import MemberResponse, MemberListResponse, RemoveMemberResponse
from travelnest.schemas.invitation import (
    InviteMemberRequest, InviteMemberResponse, InvitationTokenRequest,
    InvitationActionResponse, InviteVerifyResponse,
)
from travelnest.schemas.notification import NotificationResponse, NotificationListResponse, MarkReadResponse

__all__ = [
    "CurrentUser", "ProfileSummary",
    "TripCreate", "TripUpdate", "TripResponse", "TripSummary",
    "MemberResponse", "MemberListResponse", "RemoveMemberResponse",
    "InviteMemberRequest", "InviteMemberResponse", "InvitationTokenRequest",
    "InvitationActionResponse", "InviteVerifyResponse",
    "NotificationResponse", "NotificationListResponse", "MarkReadResponse",
]
