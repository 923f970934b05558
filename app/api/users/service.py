import logging
import os
import uuid
from typing import Optional

from fastapi import UploadFile
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.api.chats.models import Chat, direct_chat_key
from app.api.users.models import User
from app.api.users.schemas import UserProfile, UserProfileUpdate, PublicProfile, UserList, UserShort
from app.core.config import settings
from app.core.exceptions import NotFound, ValidationError
from app.core.responses import Pagination

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}
UPLOAD_URL_PREFIX = "/uploads/"


class UserService:
    def __init__(self, db: Session):
        self.db = db

    def get_profile(self, user: User) -> UserProfile:
        return UserProfile.model_validate(user)

    def update_profile(self, user: User, data: UserProfileUpdate) -> UserProfile:
        for key, value in data.model_dump(exclude_unset=True).items():
            setattr(user, key, value)
        self.db.commit()
        self.db.refresh(user)
        return UserProfile.model_validate(user)

    def get_public_profile(self, user_id: int, viewer: Optional[User] = None) -> PublicProfile:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFound("User not found")

        profile = PublicProfile.model_validate(user)
        if viewer is not None and viewer.id != user.id:
            chat = self.db.query(Chat.id).filter(
                Chat.direct_key == direct_chat_key(viewer.id, user.id)
            ).first()
            profile.direct_chat_id = chat.id if chat else None
        return profile

    def list_users(self, viewer: User, search: Optional[str], page: int, limit: int) -> UserList:
        query = self.db.query(User).filter(User.id != viewer.id, User.is_banned.is_(False))
        if search:
            pattern = f"%{search.lower()}%"
            query = query.filter(or_(
                func.lower(User.username).like(pattern),
                func.lower(User.full_name).like(pattern)
            ))

        total = query.count()
        users = query.order_by(User.full_name).offset((page - 1) * limit).limit(limit).all()
        return UserList(
            users=[UserShort.model_validate(u) for u in users],
            pagination=Pagination.build(page, limit, total)
        )

    async def upload_profile_picture(self, user: User, file: UploadFile) -> UserProfile:
        extension = ALLOWED_IMAGE_TYPES.get(file.content_type or "")
        if extension is None:
            raise ValidationError("Only JPEG, PNG, GIF and WEBP images are allowed")

        content = await file.read()
        if not content:
            raise ValidationError("Uploaded file is empty")
        if len(content) > settings.MAX_UPLOAD_SIZE:
            raise ValidationError("File is too large")

        os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
        filename = f"{uuid.uuid4().hex}{extension}"
        with open(os.path.join(settings.UPLOAD_DIR, filename), "wb") as f:
            f.write(content)

        previous_url = user.profile_picture_url
        user.profile_picture_url = f"{UPLOAD_URL_PREFIX}{filename}"
        self.db.commit()
        self.db.refresh(user)

        self._remove_upload(previous_url)
        return UserProfile.model_validate(user)

    def delete_profile_picture(self, user: User) -> UserProfile:
        if not user.profile_picture_url:
            raise NotFound("No profile picture to delete")

        previous_url = user.profile_picture_url
        user.profile_picture_url = None
        self.db.commit()
        self.db.refresh(user)

        self._remove_upload(previous_url)
        return UserProfile.model_validate(user)

    @staticmethod
    def _remove_upload(url: Optional[str]) -> None:
        """Deletes a previously uploaded file; external URLs are left alone."""
        if not url or not url.startswith(UPLOAD_URL_PREFIX):
            return
        path = os.path.join(settings.UPLOAD_DIR, os.path.basename(url))
        try:
            os.remove(path)
        except OSError as e:
            logger.warning(f"Could not remove uploaded file {path}: {e}")
