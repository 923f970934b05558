import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from app.api.chats.models import Chat, ChatParticipant
from app.api.chats.permissions import ChatPermissions
from app.api.messages.models import Message, MessageStatus
from app.api.messages.schemas import (
    MessageCreate, MessageFeed, MessageItem, MessageStatusList, MessageUpdate,
    SearchItem, SearchResult, StatusItem,
)
from app.api.users.models import User
from app.core.config import settings
from app.core.exceptions import Forbidden, NotFound, ValidationError
from app.core.responses import Pagination
from app.database.cache import MessageCache

logger = logging.getLogger(__name__)

READ = "read"
SENT = "sent"

# INSERT .. ON CONFLICT DO UPDATE per supported backend
UPSERT_INSERTS = {
    "postgresql": postgresql_insert,
    "sqlite": sqlite_insert,
}


class MessageService:
    def __init__(self, db: Session, cache: MessageCache):
        self.db = db
        self.cache = cache
        self.permissions = ChatPermissions(db)

    def get_feed(
            self,
            chat_id: int,
            user: User,
            page: int = 1,
            limit: int = 50,
            before: Optional[datetime] = None
    ) -> MessageFeed:
        self.permissions.require_member(chat_id, user.id)

        query = self.db.query(Message).filter(Message.chat_id == chat_id)
        if before is not None:
            query = query.filter(Message.created_at < before)

        total = query.count()
        messages = (
            query.order_by(Message.created_at.desc(), Message.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        # newest page first, oldest message first inside the page
        messages.reverse()

        previous = self._mark_read([m.id for m in messages], user.id)

        return MessageFeed(
            messages=[self._to_item(m, previous.get(m.id)) for m in messages],
            pagination=Pagination.build(page, limit, total)
        )

    def send_message(self, data: MessageCreate, user: User) -> MessageItem:
        self.permissions.require_member(data.chat_id, user.id)

        if data.reply_to_id is not None:
            reply_target = self.db.query(Message.id).filter(
                Message.id == data.reply_to_id,
                Message.chat_id == data.chat_id
            ).first()
            if reply_target is None:
                raise ValidationError("Reply message not found in this chat")

        message = Message(
            chat_id=data.chat_id,
            sender_id=user.id,
            content=data.content,
            message_type=data.message_type.value,
            media_url=data.media_url,
            reply_to_id=data.reply_to_id
        )
        self.db.add(message)
        self.db.flush()

        recipient_ids = self.db.query(ChatParticipant.user_id).filter(
            ChatParticipant.chat_id == data.chat_id,
            ChatParticipant.user_id != user.id
        ).all()
        for (recipient_id,) in recipient_ids:
            self.db.add(MessageStatus(message_id=message.id, user_id=recipient_id, status=SENT))

        self.db.query(Chat).filter(Chat.id == data.chat_id).update({"updated_at": datetime.utcnow()})
        self.db.commit()
        self.db.refresh(message)

        item = self._to_item(message)
        self.cache.set_message(message.id, item.model_dump(mode="json"))
        return item

    def edit_message(self, message_id: int, data: MessageUpdate, user: User) -> MessageItem:
        message = self._get_message(message_id)

        if message.sender_id != user.id:
            raise Forbidden("You can only edit your own messages")

        if self._age(message) > timedelta(minutes=settings.MESSAGE_EDIT_WINDOW_MINUTES):
            raise ValidationError("Message is too old to edit")

        message.content = data.content
        message.is_edited = True
        message.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(message)

        item = self._to_item(message)
        self.cache.update_message(message.id, {
            "content": item.content,
            "is_edited": True,
            "updated_at": item.updated_at.isoformat() if item.updated_at else None,
        })
        return item

    def delete_message(self, message_id: int, user: User) -> None:
        message = self._get_message(message_id)
        membership = self.permissions.get_membership(message.chat_id, user.id)

        is_sender = message.sender_id == user.id
        is_chat_admin = self.permissions.is_admin_or_creator(membership)

        if not is_sender and not is_chat_admin:
            raise Forbidden("You can only delete your own messages or need admin privileges")

        if not is_chat_admin and \
                self._age(message) > timedelta(minutes=settings.MESSAGE_DELETE_WINDOW_MINUTES):
            raise ValidationError("Message is too old to delete")

        self.db.delete(message)
        self.db.commit()
        self.cache.delete_message(message_id)

    def get_status(self, message_id: int, user: User) -> MessageStatusList:
        message = self._get_message(message_id)
        self.permissions.require_member(message.chat_id, user.id, message="Access denied to this message")

        rows = (
            self.db.query(MessageStatus, User)
            .join(User, MessageStatus.user_id == User.id)
            .filter(MessageStatus.message_id == message_id)
            .order_by(MessageStatus.updated_at.asc())
            .all()
        )
        return MessageStatusList(
            message_id=message_id,
            status=[
                StatusItem(
                    user_id=status.user_id,
                    username=status_user.username,
                    full_name=status_user.full_name,
                    status=status.status,
                    updated_at=status.updated_at
                )
                for status, status_user in rows
            ]
        )

    def mark_read(self, message_id: int, user: User) -> None:
        message = self._get_message(message_id)
        self.permissions.require_member(message.chat_id, user.id, message="Access denied to this message")
        self._mark_read([message.id], user.id)

    def search(self, query: str, user: User, chat_id: Optional[int] = None, limit: int = 20) -> SearchResult:
        query = (query or "").strip()
        if len(query) < 2:
            raise ValidationError("Search query must be at least 2 characters long")

        pattern = "%{}%".format(
            query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        )
        rows_query = (
            self.db.query(Message, User, Chat)
            .join(User, Message.sender_id == User.id)
            .join(Chat, Message.chat_id == Chat.id)
            .join(ChatParticipant, ChatParticipant.chat_id == Chat.id)
            .filter(
                ChatParticipant.user_id == user.id,
                func.lower(Message.content).like(pattern.lower(), escape="\\")
            )
        )
        if chat_id is not None:
            rows_query = rows_query.filter(Chat.id == chat_id)

        rows = rows_query.order_by(Message.created_at.desc(), Message.id.desc()).limit(limit).all()

        messages = [
            SearchItem(
                id=message.id,
                content=message.content,
                message_type=message.message_type,
                media_url=message.media_url,
                created_at=message.created_at,
                sender_id=sender.id,
                sender_username=sender.username,
                sender_name=sender.full_name,
                chat_id=chat.id,
                chat_name=chat.name,
                is_group=chat.is_group
            )
            for message, sender, chat in rows
        ]
        return SearchResult(messages=messages, query=query, total=len(messages))

    def _mark_read(self, message_ids: List[int], user_id: int) -> Dict[int, str]:
        """Upserts a read marker per message and returns the markers seen before."""
        if not message_ids:
            return {}

        previous = self._read_markers(message_ids, user_id)

        now = datetime.utcnow()
        insert = UPSERT_INSERTS[self.db.get_bind().dialect.name]
        statement = insert(MessageStatus).values([
            {"message_id": message_id, "user_id": user_id, "status": READ, "updated_at": now}
            for message_id in message_ids
        ])
        # a concurrent fetch may have inserted the same rows since the read above
        statement = statement.on_conflict_do_update(
            index_elements=["message_id", "user_id"],
            set_={"status": READ, "updated_at": now}
        )
        self.db.execute(statement)
        self.db.commit()
        return previous

    def _read_markers(self, message_ids: List[int], user_id: int) -> Dict[int, str]:
        rows = self.db.query(MessageStatus.message_id, MessageStatus.status).filter(
            MessageStatus.message_id.in_(message_ids),
            MessageStatus.user_id == user_id
        ).all()
        return {message_id: status for message_id, status in rows}

    def _get_message(self, message_id: int) -> Message:
        message = self.db.query(Message).filter(Message.id == message_id).first()
        if message is None:
            raise NotFound("Message not found")
        return message

    @staticmethod
    def _age(message: Message) -> timedelta:
        return datetime.utcnow() - message.created_at

    @staticmethod
    def _to_item(message: Message, message_status: Optional[str] = None) -> MessageItem:
        return MessageItem(
            id=message.id,
            chat_id=message.chat_id,
            content=message.content,
            message_type=message.message_type,
            media_url=message.media_url,
            reply_to_id=message.reply_to_id,
            is_edited=message.is_edited,
            created_at=message.created_at,
            updated_at=message.updated_at,
            sender_id=message.sender.id,
            sender_username=message.sender.username,
            sender_name=message.sender.full_name,
            sender_avatar=message.sender.profile_picture_url,
            message_status=message_status
        )
