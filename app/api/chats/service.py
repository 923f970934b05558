import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.api.chats.models import Chat, ChatParticipant, direct_chat_key
from app.api.chats.permissions import ChatPermissions
from app.api.chats.schemas import (
    ChatCreate, ChatItem, ChatListResponse, ChatMembershipChange, ChatUpdate,
    ParticipantAdd, ParticipantAdded, ParticipantItem,
)
from app.api.messages.models import Message, MessageStatus
from app.api.users.models import User
from app.core.exceptions import Conflict, Forbidden, NotFound, ValidationError
from app.core.responses import Pagination
from app.database.cache import MessageCache

logger = logging.getLogger(__name__)


class ChatService:
    def __init__(self, db: Session, cache: Optional[MessageCache] = None):
        self.db = db
        self.cache = cache
        self.permissions = ChatPermissions(db)

    def get_chats(self, user: User, page: int = 1, limit: int = 20) -> ChatListResponse:
        last_activity = (
            select(Message.chat_id, func.max(Message.created_at).label("last_time"))
            .group_by(Message.chat_id)
            .subquery()
        )

        chats = (
            self.db.query(Chat)
            .join(ChatParticipant, ChatParticipant.chat_id == Chat.id)
            .outerjoin(last_activity, last_activity.c.chat_id == Chat.id)
            .filter(ChatParticipant.user_id == user.id)
            .order_by(
                # chats without messages go last
                case((last_activity.c.last_time.is_(None), 1), else_=0),
                last_activity.c.last_time.desc(),
                Chat.updated_at.desc()
            )
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )

        total = self.db.query(func.count(ChatParticipant.id)).filter(
            ChatParticipant.user_id == user.id
        ).scalar() or 0

        return ChatListResponse(
            chats=[self._build_chat_item(chat, user.id) for chat in chats],
            pagination=Pagination.build(page, limit, total)
        )

    def get_chat(self, chat_id: int, user: User) -> ChatItem:
        self.permissions.require_member(chat_id, user.id)
        return self._build_chat_item(self.permissions.get_chat(chat_id), user.id)

    def create_chat(self, data: ChatCreate, user: User) -> ChatItem:
        participant_ids = list(data.participant_ids)
        if user.id not in participant_ids:
            participant_ids.append(user.id)

        users = self.db.query(User).filter(User.id.in_(participant_ids)).all()
        if len(users) != len(participant_ids):
            raise ValidationError("One or more participants not found")

        direct_key = None
        chat_name = data.name
        if not data.is_group:
            if len(participant_ids) != 2:
                raise ValidationError("Individual chats must have exactly two participants")

            direct_key = direct_chat_key(*participant_ids)
            self._raise_if_direct_chat_exists(direct_key, user.id)

            if not chat_name:
                other = next(u for u in users if u.id != user.id)
                chat_name = other.full_name or other.username or "Chat"

        chat = Chat(
            name=chat_name,
            is_group=data.is_group,
            created_by=user.id,
            direct_key=direct_key
        )

        # Chat and its participants are committed together
        try:
            self.db.add(chat)
            self.db.flush()
            for participant_id in participant_ids:
                self.db.add(ChatParticipant(
                    chat_id=chat.id,
                    user_id=participant_id,
                    is_admin=data.is_group and participant_id == user.id
                ))
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            if direct_key is None:
                raise
            # A concurrent request created the same individual chat first
            self._raise_if_direct_chat_exists(direct_key, user.id)
            raise

        self.db.refresh(chat)
        logger.info(f"Chat {chat.id} created by user {user.id} (group={chat.is_group})")
        return self._build_chat_item(chat, user.id)

    def update_chat(self, chat_id: int, data: ChatUpdate, user: User) -> ChatItem:
        membership = self.permissions.require_admin_or_creator(chat_id, user.id)
        chat = membership.chat
        update_data = data.model_dump(exclude_unset=True)

        if "name" in update_data:
            chat.name = update_data["name"]

        new_is_group = update_data.get("is_group")
        if new_is_group is not None and new_is_group != chat.is_group:
            if new_is_group:
                # the actor becomes the admin of the new group
                chat.is_group = True
                chat.direct_key = None
                membership.is_admin = True
            else:
                member_ids = [p.user_id for p in chat.participants]
                if len(member_ids) != 2:
                    raise ValidationError("Individual chats must have exactly two participants")
                chat.is_group = False
                chat.direct_key = direct_chat_key(*member_ids)
                for participant in chat.participants:
                    participant.is_admin = False

        chat.updated_at = datetime.utcnow()
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict("An individual chat between these users already exists")

        self.db.refresh(chat)
        return self._build_chat_item(chat, user.id)

    def add_participant(self, chat_id: int, data: ParticipantAdd, user: User) -> ParticipantAdded:
        membership = self.permissions.require_admin(
            chat_id, user.id, message="Only admins can add participants"
        )
        if not membership.chat.is_group:
            raise ValidationError("Cannot add participants to individual chats")

        target = self.db.query(User).filter(User.id == data.user_id).first()
        if target is None:
            raise NotFound("User not found")

        if self.permissions.get_membership(chat_id, target.id) is not None:
            raise Conflict("User is already a participant in this chat")

        self.db.add(ChatParticipant(chat_id=chat_id, user_id=target.id, is_admin=data.is_admin))
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict("User is already a participant in this chat")

        return ParticipantAdded(
            chat_id=chat_id,
            user_id=target.id,
            username=target.username,
            full_name=target.full_name,
            is_admin=data.is_admin
        )

    def remove_participant(self, chat_id: int, target_user_id: int, user: User) -> ChatMembershipChange:
        membership = self.permissions.require_member(chat_id, user.id)
        chat = membership.chat
        removing_self = target_user_id == user.id

        if not removing_self and not self.permissions.is_admin_or_creator(membership):
            raise Forbidden("Only admins can remove participants")

        if not chat.is_group:
            raise ValidationError("Cannot remove participants from individual chats")

        target = self.permissions.get_membership(chat_id, target_user_id)
        if target is None:
            raise NotFound("User is not a participant in this chat")

        if target.is_admin and self.permissions.admin_count(chat_id) <= 1:
            raise ValidationError("Cannot remove the only admin from the chat")

        self.db.delete(target)
        self.db.commit()
        return ChatMembershipChange(chat_id=chat_id, user_id=target_user_id)

    def leave_chat(self, chat_id: int, user: User) -> ChatMembershipChange:
        membership = self.permissions.require_member(
            chat_id, user.id, message="You are not a participant in this chat"
        )
        chat = membership.chat

        if not chat.is_group:
            self._delete_chat(chat)
            return ChatMembershipChange(chat_id=chat_id, user_id=user.id, chat_deleted=True)

        if self.permissions.member_count(chat_id) == 1:
            # nobody left to hand the group over to
            self._delete_chat(chat)
            return ChatMembershipChange(chat_id=chat_id, user_id=user.id, chat_deleted=True)

        if membership.is_admin and self.permissions.admin_count(chat_id) <= 1:
            raise ValidationError(
                "Cannot leave group as the only admin. Transfer admin role or delete the group."
            )

        self.db.delete(membership)
        self.db.commit()
        return ChatMembershipChange(chat_id=chat_id, user_id=user.id)

    def _delete_chat(self, chat: Chat) -> None:
        chat_id = chat.id
        message_ids = [row.id for row in self.db.query(Message.id).filter(Message.chat_id == chat_id)]
        self.db.delete(chat)
        self.db.commit()
        logger.info(f"Chat {chat_id} deleted with {len(message_ids)} messages")

        if self.cache is not None:
            for message_id in message_ids:
                self.cache.delete_message(message_id)

    def _raise_if_direct_chat_exists(self, direct_key: str, user_id: int) -> None:
        existing = self.db.query(Chat).filter(Chat.direct_key == direct_key).first()
        if existing is not None:
            raise Conflict("Chat already exists", data=self._build_chat_item(existing, user_id))

    def _build_chat_item(self, chat: Chat, user_id: int) -> ChatItem:
        last_message = self.db.query(Message).filter(
            Message.chat_id == chat.id
        ).order_by(Message.created_at.desc(), Message.id.desc()).first()

        participants: List[ParticipantItem] = [
            ParticipantItem(
                id=p.user.id,
                username=p.user.username,
                full_name=p.user.full_name,
                profile_picture_url=p.user.profile_picture_url,
                is_online=p.user.is_online,
                last_seen=p.user.last_seen,
                joined_at=p.joined_at,
                is_admin=p.is_admin
            )
            for p in chat.participants
        ]

        chat_item = {
            "id": chat.id,
            "name": chat.name,
            "is_group": chat.is_group,
            "created_by": chat.created_by,
            "created_by_name": chat.creator.full_name if chat.creator else None,
            "created_at": chat.created_at,
            "updated_at": chat.updated_at,
            "participant_count": len(participants),
            "unread_count": self.unread_count(chat.id, user_id),
            "participants": participants,
        }

        if last_message:
            chat_item.update({
                "last_message": last_message.content,
                "last_message_time": last_message.created_at,
                "last_message_sender_id": last_message.sender_id
            })

        return ChatItem(**chat_item)

    def unread_count(self, chat_id: int, user_id: int) -> int:
        """Messages from other participants that the user has no read marker for."""
        read_ids = select(MessageStatus.message_id).where(
            MessageStatus.user_id == user_id,
            MessageStatus.status == "read"
        )
        return self.db.query(func.count(Message.id)).filter(
            Message.chat_id == chat_id,
            Message.sender_id != user_id,
            Message.id.not_in(read_ids)
        ).scalar() or 0
