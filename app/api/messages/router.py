from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.auth.dependencies import get_current_active_user
from app.api.messages.schemas import (
    DeletedMessage, MessageCreate, MessageFeed, MessageItem, MessageStatusList,
    MessageUpdate, SearchResult,
)
from app.api.messages.service import MessageService
from app.api.users.models import User
from app.core.config import settings
from app.core.responses import ApiResponse
from app.database.cache import MessageCache, get_cache
from app.database.database import get_db

router = APIRouter(prefix=f"{settings.API_PREFIX}/messages", tags=["messages"])


def get_message_service(
        db: Session = Depends(get_db),
        cache: MessageCache = Depends(get_cache)
) -> MessageService:
    return MessageService(db, cache)


@router.get("/search", response_model=ApiResponse[SearchResult])
async def search_messages(
        query: Optional[str] = None,
        chat_id: Optional[int] = Query(None, alias="chatId"),
        limit: int = Query(20, ge=1, le=100),
        current_user: User = Depends(get_current_active_user),
        service: MessageService = Depends(get_message_service)
):
    return ApiResponse(data=service.search(query, current_user, chat_id, limit))


@router.get("/chat/{chat_id}", response_model=ApiResponse[MessageFeed])
async def get_messages(
        chat_id: int,
        page: int = Query(1, ge=1),
        limit: int = Query(50, ge=1, le=100),
        before: Optional[datetime] = None,
        current_user: User = Depends(get_current_active_user),
        service: MessageService = Depends(get_message_service)
):
    return ApiResponse(data=service.get_feed(chat_id, current_user, page, limit, before))


@router.post("", response_model=ApiResponse[MessageItem], status_code=status.HTTP_201_CREATED)
async def send_message(
        data: MessageCreate,
        current_user: User = Depends(get_current_active_user),
        service: MessageService = Depends(get_message_service)
):
    return ApiResponse(message="Message sent successfully", data=service.send_message(data, current_user))


@router.put("/{message_id}", response_model=ApiResponse[MessageItem])
async def edit_message(
        message_id: int,
        data: MessageUpdate,
        current_user: User = Depends(get_current_active_user),
        service: MessageService = Depends(get_message_service)
):
    return ApiResponse(
        message="Message updated successfully",
        data=service.edit_message(message_id, data, current_user)
    )


@router.delete("/{message_id}", response_model=ApiResponse[DeletedMessage])
async def delete_message(
        message_id: int,
        current_user: User = Depends(get_current_active_user),
        service: MessageService = Depends(get_message_service)
):
    service.delete_message(message_id, current_user)
    return ApiResponse(message="Message deleted successfully", data=DeletedMessage(message_id=message_id))


@router.get("/{message_id}/status", response_model=ApiResponse[MessageStatusList])
async def get_message_status(
        message_id: int,
        current_user: User = Depends(get_current_active_user),
        service: MessageService = Depends(get_message_service)
):
    return ApiResponse(data=service.get_status(message_id, current_user))


@router.post("/{message_id}/read", response_model=ApiResponse)
async def mark_message_read(
        message_id: int,
        current_user: User = Depends(get_current_active_user),
        service: MessageService = Depends(get_message_service)
):
    service.mark_read(message_id, current_user)
    return ApiResponse(message="Message marked as read")
