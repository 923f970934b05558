import logging
from datetime import date, datetime, timedelta
from typing import List, Optional

from sqlalchemy import case, func, or_
from sqlalchemy.orm import Session

from app.api.admin.schemas import (
    ActivityItem, AdminUserDetail, AdminUserItem, AdminUserList, AdminUserUpdate,
    BanRequest, BanResult, ChatStats, DailyCount, Dashboard, DateRange, DeletedUser,
    LogList, MessageStats, OnlineUser, RecentUser, SessionLog, SystemStats,
    TopChatter, UserStats,
)
from app.api.chats.models import Chat, ChatParticipant
from app.api.health.service import get_system_health
from app.api.messages.models import Message
from app.api.users.models import User, UserSession
from app.core.exceptions import Conflict, NotFound, ValidationError
from app.core.responses import Pagination
from app.database.cache import MessageCache

logger = logging.getLogger(__name__)

SORTABLE_USER_FIELDS = {
    "username": User.username,
    "email": User.email,
    "full_name": User.full_name,
    "created_at": User.created_at,
    "last_seen": User.last_seen,
    "is_online": User.is_online,
}
MEDIA_TYPES = ("image", "video", "audio", "file")
DASHBOARD_DAYS = 30


class AdminService:
    def __init__(self, db: Session, cache: MessageCache):
        self.db = db
        self.cache = cache

    # ---------- users ----------

    def list_users(
            self,
            page: int = 1,
            limit: int = 20,
            search: Optional[str] = None,
            sort_by: str = "created_at",
            sort_order: str = "desc"
    ) -> AdminUserList:
        query = self.db.query(User)
        if search:
            pattern = f"%{search.lower()}%"
            query = query.filter(or_(
                func.lower(User.username).like(pattern),
                func.lower(User.email).like(pattern),
                func.lower(User.full_name).like(pattern)
            ))

        # unknown sort fields fall back to the default instead of reaching SQL
        column = SORTABLE_USER_FIELDS.get(sort_by, User.created_at)
        ordering = column.asc() if sort_order.lower() == "asc" else column.desc()

        total = query.count()
        users = query.order_by(ordering, User.id).offset((page - 1) * limit).limit(limit).all()
        return AdminUserList(
            users=[AdminUserItem.model_validate(u) for u in users],
            pagination=Pagination.build(page, limit, total)
        )

    def get_user_details(self, user_id: int) -> AdminUserDetail:
        user = self._get_user(user_id)

        total_chats = self.db.query(func.count(ChatParticipant.id)).filter(
            ChatParticipant.user_id == user.id
        ).scalar() or 0
        total_messages = self.db.query(func.count(Message.id)).filter(
            Message.sender_id == user.id
        ).scalar() or 0
        active_sessions = self.db.query(func.count(UserSession.id)).filter(
            UserSession.user_id == user.id,
            UserSession.is_active.is_(True),
            UserSession.expires_at > datetime.utcnow()
        ).scalar() or 0

        details = AdminUserDetail.model_validate(user)
        details.total_chats = total_chats
        details.total_messages = total_messages
        details.active_sessions = active_sessions
        details.recent_activity = self._user_activity(user.id)
        return details

    def update_user(self, user_id: int, data: AdminUserUpdate) -> AdminUserItem:
        user = self._get_user(user_id)
        changes = data.model_dump(exclude_unset=True)

        email = changes.get("email")
        if email and email != user.email:
            taken = self.db.query(User.id).filter(User.email == email, User.id != user.id).first()
            if taken:
                raise Conflict("Email already in use")

        for key, value in changes.items():
            setattr(user, key, value)
        self.db.commit()
        self.db.refresh(user)

        logger.info(f"Admin updated user {user.id}: {sorted(changes)}")
        return AdminUserItem.model_validate(user)

    def delete_user(self, user_id: int, admin: User) -> DeletedUser:
        if user_id == admin.id:
            raise ValidationError("Cannot delete your own account")
        user = self._get_user(user_id)

        result = DeletedUser(deleted_user_id=user.id, deleted_username=user.username)
        message_ids = [m.id for m in self.db.query(Message.id).filter(Message.sender_id == user.id)]

        self.db.delete(user)
        self.db.commit()

        for message_id in message_ids:
            self.cache.delete_message(message_id)

        logger.info(f"Admin {admin.id} deleted user {result.deleted_user_id}")
        return result

    def set_ban(self, user_id: int, data: BanRequest, admin: User) -> BanResult:
        if user_id == admin.id:
            raise ValidationError("Cannot ban your own account")
        user = self._get_user(user_id)

        user.is_banned = data.banned
        user.banned_reason = data.reason if data.banned else None
        if data.banned:
            # banned users lose every open session right away
            self.db.query(UserSession).filter(
                UserSession.user_id == user.id,
                UserSession.is_active.is_(True)
            ).update({UserSession.is_active: False}, synchronize_session=False)
            user.is_online = False
        self.db.commit()

        logger.info(f"Admin {admin.id} set banned={data.banned} for user {user.id}")
        return BanResult(user_id=user.id, banned=user.is_banned, reason=user.banned_reason)

    # ---------- reporting ----------

    def get_stats(self, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None) -> SystemStats:
        now = datetime.utcnow()
        week_ago = now - timedelta(days=7)
        month_ago = now - timedelta(days=30)
        day_ago = now - timedelta(days=1)

        user_row = self._in_range(
            self.db.query(
                func.count(User.id),
                func.count(case((User.is_online.is_(True), 1))),
                func.count(case((User.is_admin.is_(True), 1))),
                func.count(case((User.is_banned.is_(True), 1))),
                func.count(case((User.created_at >= week_ago, 1))),
                func.count(case((User.created_at >= month_ago, 1))),
            ),
            User.created_at, start_date, end_date
        ).one()

        message_row = self._in_range(
            self.db.query(
                func.count(Message.id),
                func.count(case((Message.created_at >= day_ago, 1))),
                func.count(case((Message.created_at >= week_ago, 1))),
                func.count(case((Message.message_type.in_(MEDIA_TYPES), 1))),
            ),
            Message.created_at, start_date, end_date
        ).one()

        chat_row = self._in_range(
            self.db.query(
                func.count(Chat.id),
                func.count(case((Chat.is_group.is_(True), 1))),
                func.count(case((Chat.is_group.is_(False), 1))),
                func.count(case((Chat.created_at >= week_ago, 1))),
            ),
            Chat.created_at, start_date, end_date
        ).one()

        online = (
            self.db.query(User)
            .filter(User.is_online.is_(True))
            .order_by(User.last_seen.desc())
            .limit(10)
            .all()
        )

        return SystemStats(
            users=UserStats(
                total_users=user_row[0],
                online_users=user_row[1],
                admin_users=user_row[2],
                banned_users=user_row[3],
                new_users_week=user_row[4],
                new_users_month=user_row[5],
            ),
            messages=MessageStats(
                total_messages=message_row[0],
                messages_today=message_row[1],
                messages_week=message_row[2],
                media_messages=message_row[3],
            ),
            chats=ChatStats(
                total_chats=chat_row[0],
                group_chats=chat_row[1],
                individual_chats=chat_row[2],
                new_chats_week=chat_row[3],
            ),
            online_users=[OnlineUser.model_validate(u) for u in online],
            recent_activity=self._system_activity(week_ago),
            date_range=DateRange(start_date=start_date, end_date=end_date)
        )

    def get_logs(self, limit: int = 50) -> LogList:
        rows = (
            self.db.query(UserSession, User.username)
            .join(User, User.id == UserSession.user_id)
            .order_by(UserSession.created_at.desc(), UserSession.id.desc())
            .limit(limit)
            .all()
        )
        logs = [
            SessionLog(
                created_at=session.created_at,
                username=username,
                device_info=session.device_info,
                ip_address=session.ip_address,
                status="active" if session.is_active else "inactive",
            )
            for session, username in rows
        ]
        return LogList(logs=logs, total=len(logs), limit=limit)

    def get_dashboard(self) -> Dashboard:
        since = datetime.utcnow() - timedelta(days=DASHBOARD_DAYS)
        week_ago = datetime.utcnow() - timedelta(days=7)

        recent_users = self.db.query(User).order_by(User.created_at.desc(), User.id.desc()).limit(10).all()

        message_count = func.count(Message.id).label("message_count")
        top_chatters = (
            self.db.query(User.username, User.full_name, message_count)
            .join(Message, Message.sender_id == User.id)
            .filter(Message.created_at >= week_ago)
            .group_by(User.id, User.username, User.full_name)
            .order_by(message_count.desc())
            .limit(10)
            .all()
        )

        return Dashboard(
            user_growth=self._daily_counts(User.id, User.created_at, since),
            message_activity=self._daily_counts(Message.id, Message.created_at, since),
            chat_growth=self._daily_counts(Chat.id, Chat.created_at, since),
            recent_users=[RecentUser.model_validate(u) for u in recent_users],
            top_chatters=[
                TopChatter(username=row.username, full_name=row.full_name, message_count=row.message_count)
                for row in top_chatters
            ],
            system_health=get_system_health(self.cache)
        )

    # ---------- helpers ----------

    def _get_user(self, user_id: int) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFound("User not found")
        return user

    @staticmethod
    def _in_range(query, column, start_date: Optional[datetime], end_date: Optional[datetime]):
        if start_date:
            query = query.filter(column >= start_date)
        if end_date:
            query = query.filter(column <= end_date)
        return query

    def _daily_counts(self, id_column, time_column, since: datetime) -> List[DailyCount]:
        day = func.date(time_column).label("day")
        rows = (
            self.db.query(day, func.count(id_column))
            .filter(time_column >= since)
            .group_by(day)
            .order_by(day)
            .all()
        )
        return [DailyCount(date=self._as_date(d), count=count) for d, count in rows]

    @staticmethod
    def _as_date(value) -> date:
        # sqlite returns DATE() as text
        if isinstance(value, str):
            return date.fromisoformat(value)
        if isinstance(value, datetime):
            return value.date()
        return value

    def _user_activity(self, user_id: int) -> List[ActivityItem]:
        messages = (
            self.db.query(Message.created_at, Message.content, Chat.name)
            .join(Chat, Chat.id == Message.chat_id)
            .filter(Message.sender_id == user_id)
            .order_by(Message.created_at.desc())
            .limit(10)
            .all()
        )
        logins = (
            self.db.query(UserSession.created_at, UserSession.device_info)
            .filter(UserSession.user_id == user_id)
            .order_by(UserSession.created_at.desc())
            .limit(10)
            .all()
        )

        activity = [
            ActivityItem(type="message_sent", created_at=created_at, details=content[:50], chat_name=chat_name)
            for created_at, content, chat_name in messages
        ]
        activity += [
            ActivityItem(type="login", created_at=created_at, details=device_info)
            for created_at, device_info in logins
        ]
        activity.sort(key=lambda item: item.created_at, reverse=True)
        return activity[:10]

    def _system_activity(self, since: datetime) -> List[ActivityItem]:
        registrations = (
            self.db.query(User.created_at, User.username)
            .filter(User.created_at >= since)
            .order_by(User.created_at.desc())
            .limit(20)
            .all()
        )
        messages = (
            self.db.query(Message.created_at, Message.content, User.username, Chat.name)
            .join(User, User.id == Message.sender_id)
            .join(Chat, Chat.id == Message.chat_id)
            .filter(Message.created_at >= since)
            .order_by(Message.created_at.desc())
            .limit(20)
            .all()
        )

        activity = [
            ActivityItem(type="user_registered", created_at=created_at, details=username)
            for created_at, username in registrations
        ]
        activity += [
            ActivityItem(
                type="message_sent",
                created_at=created_at,
                details=f"{username}: {content[:50]}",
                chat_name=chat_name
            )
            for created_at, content, username, chat_name in messages
        ]
        activity.sort(key=lambda item: item.created_at, reverse=True)
        return activity[:20]
