from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.api.chats.models import Chat, ChatParticipant
from app.core.exceptions import Forbidden, NotFound


class ChatPermissions:
    """
    Loads a chat membership and checks the role it grants.
    Every chat and message mutation goes through here.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_chat(self, chat_id: int) -> Chat:
        chat = self.db.query(Chat).filter(Chat.id == chat_id).first()
        if chat is None:
            raise NotFound("Chat not found")
        return chat

    def get_membership(self, chat_id: int, user_id: int) -> Optional[ChatParticipant]:
        return self.db.query(ChatParticipant).filter(
            ChatParticipant.chat_id == chat_id,
            ChatParticipant.user_id == user_id
        ).first()

    def require_member(
            self,
            chat_id: int,
            user_id: int,
            message: str = "Access denied to this chat"
    ) -> ChatParticipant:
        self.get_chat(chat_id)
        membership = self.get_membership(chat_id, user_id)
        if membership is None:
            raise Forbidden(message)
        return membership

    def require_admin(
            self,
            chat_id: int,
            user_id: int,
            message: str = "Only admins can perform this action"
    ) -> ChatParticipant:
        membership = self.require_member(chat_id, user_id)
        if not membership.is_admin:
            raise Forbidden(message)
        return membership

    def require_admin_or_creator(
            self,
            chat_id: int,
            user_id: int,
            message: str = "Only admins can update this chat"
    ) -> ChatParticipant:
        membership = self.require_member(chat_id, user_id)
        if not self.is_admin_or_creator(membership):
            raise Forbidden(message)
        return membership

    @staticmethod
    def is_admin_or_creator(membership: Optional[ChatParticipant]) -> bool:
        if membership is None:
            return False
        return membership.is_admin or membership.chat.created_by == membership.user_id

    def admin_count(self, chat_id: int) -> int:
        return self.db.query(func.count(ChatParticipant.id)).filter(
            ChatParticipant.chat_id == chat_id,
            ChatParticipant.is_admin.is_(True)
        ).scalar() or 0

    def member_count(self, chat_id: int) -> int:
        return self.db.query(func.count(ChatParticipant.id)).filter(
            ChatParticipant.chat_id == chat_id
        ).scalar() or 0
