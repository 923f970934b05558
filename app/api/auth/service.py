import logging
from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.api.auth.schemas import UserRegister, ChangePassword, AuthProfileUpdate
from app.api.auth.utils import get_password_hash, create_access_token, verify_password, token_lifetime
from app.api.users.models import User, UserSession
from app.core.exceptions import Conflict, Forbidden, Unauthorized, ValidationError

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(self, db: Session):
        self.db = db

    def register_user(
            self,
            user_data: UserRegister,
            device_info: Optional[str] = None,
            ip_address: Optional[str] = None
    ) -> Tuple[User, str]:
        if self._user_exists(user_data.email, user_data.username):
            raise Conflict("User with this email or username already exists")

        user = User(
            username=user_data.username,
            email=user_data.email,
            full_name=user_data.full_name,
            phone_number=user_data.phone_number,
            password_hash=get_password_hash(user_data.password)
        )
        self.db.add(user)
        self.db.flush()

        # User and first session are committed together
        token = self._open_session(user, device_info, ip_address)
        self.db.commit()
        self.db.refresh(user)

        logger.info(f"User registered: {user.username} ({user.id})")
        return user, token

    def authenticate_user(
            self,
            email: str,
            password: str,
            device_info: Optional[str] = None,
            ip_address: Optional[str] = None
    ) -> Tuple[User, str]:
        user = self.db.query(User).filter(User.email == email).first()
        if not user or not verify_password(password, user.password_hash):
            raise Unauthorized("Invalid email or password")

        if user.is_banned:
            raise Forbidden("Account is banned", data={"reason": user.banned_reason})

        token = self._open_session(user, device_info, ip_address)
        user.is_online = True
        user.last_seen = datetime.utcnow()
        self.db.commit()
        self.db.refresh(user)
        return user, token

    def logout(self, user: User, token: str) -> None:
        self.db.query(UserSession).filter(
            UserSession.session_token == token
        ).update({"is_active": False})
        user.is_online = False
        self.db.commit()

    def refresh_token(self, user: User, token: str) -> str:
        session = self.db.query(UserSession).filter(
            UserSession.session_token == token,
            UserSession.is_active.is_(True)
        ).first()
        if session is None:
            raise Unauthorized("Session expired or logged out")

        new_token = create_access_token(user.id, user.email)
        session.session_token = new_token
        session.expires_at = datetime.utcnow() + token_lifetime()
        self.db.commit()
        return new_token

    def update_profile(self, user: User, data: AuthProfileUpdate) -> User:
        update_data = data.model_dump(exclude_unset=True)
        if not update_data:
            raise ValidationError("No fields to update")
        for key, value in update_data.items():
            setattr(user, key, value)
        self.db.commit()
        self.db.refresh(user)
        return user

    def change_password(self, user: User, data: ChangePassword) -> None:
        if not verify_password(data.current_password, user.password_hash):
            raise ValidationError("Current password is incorrect")

        user.password_hash = get_password_hash(data.new_password)
        self.db.commit()

    def _open_session(self, user: User, device_info: Optional[str], ip_address: Optional[str]) -> str:
        token = create_access_token(user.id, user.email)
        self.db.add(UserSession(
            user_id=user.id,
            session_token=token,
            device_info=device_info,
            ip_address=ip_address,
            expires_at=datetime.utcnow() + token_lifetime()
        ))
        return token

    def _user_exists(self, email: str, username: str) -> bool:
        return self.db.query(User).filter(
            or_(User.email == email, User.username == username)
        ).first() is not None
