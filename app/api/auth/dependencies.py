import logging
from datetime import datetime
from typing import Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.api.auth.utils import decode_access_token
from app.api.users.models import User, UserSession
from app.core.config import settings
from app.core.exceptions import AppError, Forbidden, Unauthorized
from app.database.database import get_db

logger = logging.getLogger(__name__)

# Reads "Authorization: Bearer <token>"; missing tokens are reported by us, not by FastAPI
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_PREFIX}/auth/login", auto_error=False)


def resolve_user(token: Optional[str], db: Session) -> User:
    if not token:
        raise Unauthorized("Access token required")

    try:
        payload = decode_access_token(token)
        user_id = int(payload.get("sub"))
    except (JWTError, TypeError, ValueError):
        raise Unauthorized("Invalid or expired token")

    session = db.query(UserSession).filter(
        UserSession.session_token == token,
        UserSession.is_active.is_(True)
    ).first()
    if not session or session.expires_at < datetime.utcnow():
        raise Unauthorized("Session expired or logged out")

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise Unauthorized("User not found")
    if user.is_banned:
        raise Forbidden("Account is banned", data={"reason": user.banned_reason})

    return user


async def get_current_user(
        token: Optional[str] = Depends(oauth2_scheme),
        db: Session = Depends(get_db)
) -> User:
    """
    Returns the user behind the bearer token.
    Used as a dependency in endpoints.
    """
    return resolve_user(token, db)


async def get_current_active_user(
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db)
) -> User:
    """Same as get_current_user, and marks the user online"""
    try:
        current_user.is_online = True
        current_user.last_seen = datetime.utcnow()
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning(f"Error updating user status for {current_user.id}: {e}")
    return current_user


async def get_current_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        raise Forbidden("Admin access required")
    return current_user


async def get_optional_user(
        token: Optional[str] = Depends(oauth2_scheme),
        db: Session = Depends(get_db)
) -> Optional[User]:
    """For public endpoints: None instead of an error when the token is missing or bad"""
    if not token:
        return None
    try:
        return resolve_user(token, db)
    except AppError as e:
        logger.debug(f"Optional auth ignored: {e.message}")
        return None
