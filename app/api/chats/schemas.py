from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.core.responses import Pagination
from app.core.schemas import CamelModel


class ChatCreate(CamelModel):
    name: Optional[str] = Field(None, max_length=100, description="Chat name")
    is_group: bool = Field(False, description="Group chat flag")
    participant_ids: List[int] = Field(..., min_length=1, description="IDs of the other participants")

    @field_validator('participant_ids')
    @classmethod
    def dedupe(cls, v: List[int]) -> List[int]:
        # keep first occurrence order
        return list(dict.fromkeys(v))


class ChatUpdate(CamelModel):
    name: Optional[str] = Field(None, max_length=100)
    is_group: Optional[bool] = None

    @model_validator(mode='after')
    def require_some_field(self):
        if not self.model_fields_set:
            raise ValueError('No fields to update')
        return self


class ParticipantAdd(CamelModel):
    user_id: int = Field(..., gt=0)
    is_admin: bool = False


# Output models (response_model)
class ParticipantItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    full_name: str
    profile_picture_url: Optional[str] = None
    is_online: bool = False
    last_seen: Optional[datetime] = None
    joined_at: datetime
    is_admin: bool = False


class ChatItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: Optional[str] = None
    is_group: bool
    created_by: Optional[int] = None
    created_by_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    participant_count: int = 0
    unread_count: int = 0

    last_message: Optional[str] = None
    last_message_time: Optional[datetime] = None
    last_message_sender_id: Optional[int] = None

    participants: List[ParticipantItem] = []


class ChatListResponse(BaseModel):
    chats: List[ChatItem]
    pagination: Pagination


class ParticipantAdded(BaseModel):
    chat_id: int
    user_id: int
    username: str
    full_name: str
    is_admin: bool


class ChatMembershipChange(BaseModel):
    chat_id: int
    user_id: Optional[int] = None
    chat_deleted: bool = False
