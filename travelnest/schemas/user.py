from pydantic import BaseModel
from typing import Optional
from uuid import UUID


class CurrentUser(BaseModel):
    """Authenticated caller, as vouched for by the identity provider."""
    id: UUID
    email: str  # lower-cased
    email_confirmed: bool = False
    full_name: Optional[str] = None


class ProfileSummary(BaseModel):
    id: UUID
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None

    class Config:
        from_attributes = True
