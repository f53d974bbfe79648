from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from uuid import UUID


class TripCreate(BaseModel):
    title: str
    description: Optional[str] = None
    privacy: Optional[str] = "private"  # private | friends-only | public


class TripUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    privacy: Optional[str] = None


class TripResponse(BaseModel):
    id: UUID
    owner_id: UUID
    title: str
    description: Optional[str] = None
    privacy: str
    created_at: datetime
    updated_at: datetime
    user_role: Optional[str] = None

    class Config:
        from_attributes = True


class TripSummary(BaseModel):
    id: UUID
    title: str

    class Config:
        from_attributes = True
