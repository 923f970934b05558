from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.core.responses import Pagination


class UserShort(BaseModel):
    """Short user card used in participant lists and search results."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    full_name: str
    profile_picture_url: Optional[str] = None
    is_online: bool = False
    last_seen: Optional[datetime] = None


class AccountInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    full_name: str
    is_admin: bool = False
    is_online: bool = False


class UserProfile(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    full_name: str
    phone_number: Optional[str] = None
    bio: Optional[str] = None
    status_message: Optional[str] = None
    profile_picture_url: Optional[str] = None
    is_online: bool = False
    is_admin: bool = False
    last_seen: Optional[datetime] = None
    created_at: datetime


class PublicProfile(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    full_name: str
    bio: Optional[str] = None
    profile_picture_url: Optional[str] = None
    is_online: bool = False
    last_seen: Optional[datetime] = None
    # ID of the viewer's individual chat with this user, when the viewer is logged in
    direct_chat_id: Optional[int] = None


class UserProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(None, min_length=2, max_length=100)
    bio: Optional[str] = Field(None, max_length=500)
    profile_picture_url: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def require_some_field(self):
        if not self.model_fields_set:
            raise ValueError("No fields to update")
        return self


class UserList(BaseModel):
    users: List[UserShort]
    pagination: Pagination
