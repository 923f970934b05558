from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.api.auth.schemas import Email, Phone
from app.api.health.schemas import SystemHealth
from app.core.responses import Pagination
from app.core.schemas import CamelModel


class AdminUserItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    full_name: str
    phone_number: Optional[str] = None
    profile_picture_url: Optional[str] = None
    status_message: Optional[str] = None
    is_online: bool = False
    last_seen: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    is_admin: bool = False
    is_banned: bool = False
    banned_reason: Optional[str] = None


class AdminUserList(BaseModel):
    users: List[AdminUserItem]
    pagination: Pagination


class ActivityItem(BaseModel):
    type: str
    created_at: datetime
    details: Optional[str] = None
    chat_name: Optional[str] = None


class AdminUserDetail(AdminUserItem):
    total_chats: int = 0
    total_messages: int = 0
    active_sessions: int = 0
    recent_activity: List[ActivityItem] = []


class AdminUserUpdate(CamelModel):
    full_name: Optional[str] = Field(None, min_length=2, max_length=100)
    email: Optional[Email] = Field(None, max_length=255)
    phone_number: Phone = Field(None, max_length=30)
    is_admin: Optional[bool] = None
    is_online: Optional[bool] = None
    status_message: Optional[str] = Field(None, max_length=500)

    @model_validator(mode='after')
    def require_some_field(self):
        if not self.model_fields_set:
            raise ValueError('No fields to update')
        return self


class BanRequest(BaseModel):
    banned: bool
    reason: Optional[str] = Field(None, max_length=500)


class BanResult(BaseModel):
    user_id: int
    banned: bool
    reason: Optional[str] = None


class DeletedUser(BaseModel):
    deleted_user_id: int
    deleted_username: str


class UserStats(BaseModel):
    total_users: int = 0
    online_users: int = 0
    admin_users: int = 0
    banned_users: int = 0
    new_users_week: int = 0
    new_users_month: int = 0


class MessageStats(BaseModel):
    total_messages: int = 0
    messages_today: int = 0
    messages_week: int = 0
    media_messages: int = 0


class ChatStats(BaseModel):
    total_chats: int = 0
    group_chats: int = 0
    individual_chats: int = 0
    new_chats_week: int = 0


class OnlineUser(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    full_name: str
    last_seen: Optional[datetime] = None


class DateRange(BaseModel):
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class SystemStats(BaseModel):
    users: UserStats
    messages: MessageStats
    chats: ChatStats
    online_users: List[OnlineUser]
    recent_activity: List[ActivityItem]
    date_range: DateRange


class SessionLog(BaseModel):
    log_type: str = "session"
    created_at: datetime
    username: str
    device_info: Optional[str] = None
    ip_address: Optional[str] = None
    status: str


class LogList(BaseModel):
    logs: List[SessionLog]
    total: int
    limit: int


class DailyCount(BaseModel):
    date: date
    count: int


class RecentUser(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    username: str
    email: str
    created_at: datetime
    is_online: bool = False


class TopChatter(BaseModel):
    username: str
    full_name: str
    message_count: int


class Dashboard(BaseModel):
    user_growth: List[DailyCount]
    message_activity: List[DailyCount]
    chat_growth: List[DailyCount]
    recent_users: List[RecentUser]
    top_chatters: List[TopChatter]
    system_health: SystemHealth
