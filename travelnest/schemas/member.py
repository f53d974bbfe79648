from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime
from uuid import UUID
from travelnest.schemas.user import ProfileSummary


class MemberResponse(BaseModel):
    id: UUID
    trip_id: UUID
    user_id: UUID
    role: str
    invited_by: Optional[UUID] = None
    invited_at: Optional[datetime] = None
    joined_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    status: str  # pending | joined
    profile: Optional[ProfileSummary] = None

    @classmethod
    def from_member(cls, member, profile=None) -> "MemberResponse":
        return cls(
            id=member.id,
            trip_id=member.trip_id,
            user_id=member.user_id,
            role=member.role,
            invited_by=member.invited_by,
            invited_at=member.invited_at,
            joined_at=member.joined_at,
            created_at=member.created_at,
            status="pending" if member.is_pending else "joined",
            profile=ProfileSummary.model_validate(profile) if profile is not None else None,
        )


class MemberListResponse(BaseModel):
    members: List[MemberResponse]
    user_role: Optional[str] = None


class RemoveMemberResponse(BaseModel):
    success: bool = True
    was_pending: bool
    removed_member: MemberResponse
