"""Imports every mapped class so relationships and Base.metadata are complete."""
from app.api.chats.models import Chat, ChatParticipant
from app.api.messages.models import Message, MessageStatus
from app.api.users.models import User, UserSession

__all__ = ["Chat", "ChatParticipant", "Message", "MessageStatus", "User", "UserSession"]
