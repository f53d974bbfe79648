from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from uuid import UUID
from travelnest.schemas.member import MemberResponse


class InviteMemberRequest(BaseModel):
    """Owner/editor: invite someone to a trip by email."""
    email: str
    role: Optional[str] = "editor"  # editor | viewer


class InviteMemberResponse(BaseModel):
    success: bool = True
    message: str
    is_new_user: bool
    email_sent: bool
    token_expires_at: datetime
    member: Optional[MemberResponse] = None  # Only for invitees who already have an account


class InvitationTokenRequest(BaseModel):
    """Body for accept-token and complete-signup."""
    token: str


class InvitationActionResponse(BaseModel):
    success: bool = True
    message: str
    trip_id: Optional[UUID] = None
    already_accepted: bool = False


class InviteVerifyResponse(BaseModel):
    """Public: token validation response."""
    valid: bool
    trip_id: Optional[UUID] = None
    trip_title: Optional[str] = None
    inviter_name: Optional[str] = None
    role: Optional[str] = None
    email: Optional[str] = None
    expires_at: Optional[datetime] = None
    is_new_user: bool = False
