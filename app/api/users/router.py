from typing import Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile
from sqlalchemy.orm import Session

from app.api.auth.dependencies import get_current_user, get_optional_user
from app.api.users.models import User
from app.api.users.schemas import UserProfile, UserProfileUpdate, PublicProfile, UserList
from app.api.users.service import UserService
from app.core.config import settings
from app.core.responses import ApiResponse
from app.database.database import get_db

router = APIRouter(prefix=f"{settings.API_PREFIX}/users", tags=["users"])


def get_user_service(db: Session = Depends(get_db)) -> UserService:
    return UserService(db)


@router.get("", response_model=ApiResponse[UserList])
async def list_users(
        search: Optional[str] = None,
        page: int = Query(1, ge=1),
        limit: int = Query(50, ge=1, le=100),
        current_user: User = Depends(get_current_user),
        user_service: UserService = Depends(get_user_service)
):
    return ApiResponse(data=user_service.list_users(current_user, search, page, limit))


@router.get("/profile", response_model=ApiResponse[UserProfile])
async def get_my_profile(
        current_user: User = Depends(get_current_user),
        user_service: UserService = Depends(get_user_service)
):
    return ApiResponse(data=user_service.get_profile(current_user))


@router.put("/profile", response_model=ApiResponse[UserProfile])
async def update_profile(
        profile_data: UserProfileUpdate,
        current_user: User = Depends(get_current_user),
        user_service: UserService = Depends(get_user_service)
):
    return ApiResponse(
        message="Profile updated successfully",
        data=user_service.update_profile(current_user, profile_data)
    )


@router.post("/profile-picture", response_model=ApiResponse[UserProfile])
async def upload_profile_picture(
        file: UploadFile = File(...),
        current_user: User = Depends(get_current_user),
        user_service: UserService = Depends(get_user_service)
):
    return ApiResponse(
        message="Profile picture uploaded successfully",
        data=await user_service.upload_profile_picture(current_user, file)
    )


@router.delete("/profile-picture", response_model=ApiResponse[UserProfile])
async def delete_profile_picture(
        current_user: User = Depends(get_current_user),
        user_service: UserService = Depends(get_user_service)
):
    return ApiResponse(
        message="Profile picture removed successfully",
        data=user_service.delete_profile_picture(current_user)
    )


@router.get("/{user_id}", response_model=ApiResponse[PublicProfile])
async def get_user_profile(
        user_id: int,
        viewer: Optional[User] = Depends(get_optional_user),
        user_service: UserService = Depends(get_user_service)
):
    return ApiResponse(data=user_service.get_public_profile(user_id, viewer))
