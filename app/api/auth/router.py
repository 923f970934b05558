from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from app.api.auth.dependencies import get_current_user, oauth2_scheme
from app.api.auth.schemas import UserRegister, UserLogin, ChangePassword, AuthProfileUpdate, AuthPayload, TokenPayload
from app.api.auth.service import AuthService
from app.api.users.models import User
from app.api.users.schemas import AccountInfo, UserProfile
from app.core.config import settings
from app.core.responses import ApiResponse
from app.database.database import get_db

router = APIRouter(prefix=f"{settings.API_PREFIX}/auth", tags=["auth"])


def get_auth_service(db: Session = Depends(get_db)) -> AuthService:
    return AuthService(db)


def _client_info(request: Request):
    ip_address = request.client.host if request.client else None
    return request.headers.get("user-agent"), ip_address


@router.post("/register", response_model=ApiResponse[AuthPayload], status_code=status.HTTP_201_CREATED)
async def register(
        user_data: UserRegister,
        request: Request,
        service: AuthService = Depends(get_auth_service)
):
    user, token = service.register_user(user_data, *_client_info(request))
    return ApiResponse(
        message="User registered successfully",
        data=AuthPayload(user=AccountInfo.model_validate(user), token=token)
    )


@router.post("/login", response_model=ApiResponse[AuthPayload])
async def login(
        credentials: UserLogin,
        request: Request,
        service: AuthService = Depends(get_auth_service)
):
    user, token = service.authenticate_user(credentials.email, credentials.password, *_client_info(request))
    return ApiResponse(
        message="Login successful",
        data=AuthPayload(user=AccountInfo.model_validate(user), token=token)
    )


@router.post("/logout", response_model=ApiResponse)
async def logout(
        token: str = Depends(oauth2_scheme),
        current_user: User = Depends(get_current_user),
        service: AuthService = Depends(get_auth_service)
):
    service.logout(current_user, token)
    return ApiResponse(message="Logout successful")


@router.get("/profile", response_model=ApiResponse[UserProfile])
async def get_profile(current_user: User = Depends(get_current_user)):
    return ApiResponse(data=UserProfile.model_validate(current_user))


@router.put("/profile", response_model=ApiResponse[UserProfile])
async def update_profile(
        data: AuthProfileUpdate,
        current_user: User = Depends(get_current_user),
        service: AuthService = Depends(get_auth_service)
):
    user = service.update_profile(current_user, data)
    return ApiResponse(message="Profile updated successfully", data=UserProfile.model_validate(user))


@router.put("/change-password", response_model=ApiResponse)
async def change_password(
        data: ChangePassword,
        current_user: User = Depends(get_current_user),
        service: AuthService = Depends(get_auth_service)
):
    service.change_password(current_user, data)
    return ApiResponse(message="Password changed successfully")


@router.post("/refresh", response_model=ApiResponse[TokenPayload])
async def refresh(
        token: str = Depends(oauth2_scheme),
        current_user: User = Depends(get_current_user),
        service: AuthService = Depends(get_auth_service)
):
    new_token = service.refresh_token(current_user, token)
    return ApiResponse(message="Token refreshed successfully", data=TokenPayload(token=new_token))
