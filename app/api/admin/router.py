from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.admin.schemas import (
    AdminUserDetail, AdminUserItem, AdminUserList, AdminUserUpdate, BanRequest,
    BanResult, Dashboard, DeletedUser, LogList, SystemStats,
)
from app.api.admin.service import AdminService
from app.api.auth.dependencies import get_current_admin
from app.api.users.models import User
from app.core.config import settings
from app.core.responses import ApiResponse
from app.database.cache import MessageCache, get_cache
from app.database.database import get_db

router = APIRouter(prefix=f"{settings.API_PREFIX}/admin", tags=["admin"])


def get_admin_service(
        db: Session = Depends(get_db),
        cache: MessageCache = Depends(get_cache)
) -> AdminService:
    return AdminService(db, cache)


@router.get("/users", response_model=ApiResponse[AdminUserList])
async def list_users(
        page: int = Query(1, ge=1),
        limit: int = Query(20, ge=1, le=100),
        search: Optional[str] = None,
        sort_by: str = Query("created_at", alias="sortBy"),
        sort_order: str = Query("desc", alias="sortOrder"),
        admin: User = Depends(get_current_admin),
        admin_service: AdminService = Depends(get_admin_service)
):
    return ApiResponse(data=admin_service.list_users(page, limit, search, sort_by, sort_order))


@router.get("/users/{user_id}", response_model=ApiResponse[AdminUserDetail])
async def get_user_details(
        user_id: int,
        admin: User = Depends(get_current_admin),
        admin_service: AdminService = Depends(get_admin_service)
):
    return ApiResponse(data=admin_service.get_user_details(user_id))


@router.put("/users/{user_id}", response_model=ApiResponse[AdminUserItem])
async def update_user(
        user_id: int,
        user_data: AdminUserUpdate,
        admin: User = Depends(get_current_admin),
        admin_service: AdminService = Depends(get_admin_service)
):
    return ApiResponse(
        message="User updated successfully",
        data=admin_service.update_user(user_id, user_data)
    )


@router.delete("/users/{user_id}", response_model=ApiResponse[DeletedUser])
async def delete_user(
        user_id: int,
        admin: User = Depends(get_current_admin),
        admin_service: AdminService = Depends(get_admin_service)
):
    return ApiResponse(
        message="User deleted successfully",
        data=admin_service.delete_user(user_id, admin)
    )


@router.post("/users/{user_id}/ban", response_model=ApiResponse[BanResult])
async def ban_user(
        user_id: int,
        ban_data: BanRequest,
        admin: User = Depends(get_current_admin),
        admin_service: AdminService = Depends(get_admin_service)
):
    result = admin_service.set_ban(user_id, ban_data, admin)
    return ApiResponse(
        message="User banned successfully" if result.banned else "User unbanned successfully",
        data=result
    )


@router.get("/stats", response_model=ApiResponse[SystemStats])
async def get_stats(
        start_date: Optional[datetime] = Query(None, alias="startDate"),
        end_date: Optional[datetime] = Query(None, alias="endDate"),
        admin: User = Depends(get_current_admin),
        admin_service: AdminService = Depends(get_admin_service)
):
    return ApiResponse(data=admin_service.get_stats(start_date, end_date))


@router.get("/logs", response_model=ApiResponse[LogList])
async def get_logs(
        limit: int = Query(50, ge=1, le=500),
        admin: User = Depends(get_current_admin),
        admin_service: AdminService = Depends(get_admin_service)
):
    return ApiResponse(data=admin_service.get_logs(limit))


@router.get("/dashboard", response_model=ApiResponse[Dashboard])
async def get_dashboard(
        admin: User = Depends(get_current_admin),
        admin_service: AdminService = Depends(get_admin_service)
):
    return ApiResponse(data=admin_service.get_dashboard())
