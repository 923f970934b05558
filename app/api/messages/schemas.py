from datetime import datetime
from enum import Enum
from typing import Optional, List

from pydantic import BaseModel, Field, field_validator

from app.core.responses import Pagination
from app.core.schemas import CamelModel


class MessageType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    FILE = "file"


class MessageCreate(CamelModel):
    chat_id: int = Field(..., gt=0)
    content: str = Field(..., min_length=1, max_length=5000, description="Message text")
    message_type: MessageType = MessageType.TEXT
    media_url: Optional[str] = Field(None, max_length=500)
    reply_to_id: Optional[int] = Field(None, gt=0)

    @field_validator('content')
    @classmethod
    def validate_content(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('Message cannot be empty')
        return v


class MessageUpdate(CamelModel):
    content: str = Field(..., min_length=1, max_length=5000)

    @field_validator('content')
    @classmethod
    def validate_content(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('Message cannot be empty')
        return v


# Output models (response_model)
class MessageItem(BaseModel):
    id: int
    chat_id: int
    content: str
    message_type: MessageType
    media_url: Optional[str] = None
    reply_to_id: Optional[int] = None
    is_edited: bool = False
    created_at: datetime
    updated_at: Optional[datetime] = None

    sender_id: int
    sender_username: str
    sender_name: str
    sender_avatar: Optional[str] = None

    # the requesting user's status for this message before the fetch
    message_status: Optional[str] = None


class MessageFeed(BaseModel):
    messages: List[MessageItem]
    pagination: Pagination


class StatusItem(BaseModel):
    user_id: int
    username: str
    full_name: str
    status: str
    updated_at: datetime


class MessageStatusList(BaseModel):
    message_id: int
    status: List[StatusItem]


class SearchItem(BaseModel):
    id: int
    content: str
    message_type: MessageType
    media_url: Optional[str] = None
    created_at: datetime
    sender_id: int
    sender_username: str
    sender_name: str
    chat_id: int
    chat_name: Optional[str] = None
    is_group: bool


class SearchResult(BaseModel):
    messages: List[SearchItem]
    query: str
    total: int


class DeletedMessage(BaseModel):
    message_id: int
