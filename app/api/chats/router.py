from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.auth.dependencies import get_current_active_user
from app.api.chats.schemas import (
    ChatCreate, ChatItem, ChatListResponse, ChatMembershipChange, ChatUpdate,
    ParticipantAdd, ParticipantAdded,
)
from app.api.chats.service import ChatService
from app.api.users.models import User
from app.core.config import settings
from app.core.responses import ApiResponse
from app.database.cache import MessageCache, get_cache
from app.database.database import get_db

router = APIRouter(prefix=f"{settings.API_PREFIX}/chats", tags=["chats"])


def get_chat_service(
        db: Session = Depends(get_db),
        cache: MessageCache = Depends(get_cache)
) -> ChatService:
    return ChatService(db, cache)


@router.get("", response_model=ApiResponse[ChatListResponse])
async def get_chats(
        page: int = Query(1, ge=1),
        limit: int = Query(20, ge=1, le=100),
        current_user: User = Depends(get_current_active_user),
        service: ChatService = Depends(get_chat_service)
):
    return ApiResponse(data=service.get_chats(current_user, page, limit))


@router.post("", response_model=ApiResponse[ChatItem], status_code=status.HTTP_201_CREATED)
async def create_chat(
        data: ChatCreate,
        current_user: User = Depends(get_current_active_user),
        service: ChatService = Depends(get_chat_service)
):
    return ApiResponse(message="Chat created successfully", data=service.create_chat(data, current_user))


@router.get("/{chat_id}", response_model=ApiResponse[ChatItem])
async def get_chat(
        chat_id: int,
        current_user: User = Depends(get_current_active_user),
        service: ChatService = Depends(get_chat_service)
):
    return ApiResponse(data=service.get_chat(chat_id, current_user))


@router.put("/{chat_id}", response_model=ApiResponse[ChatItem])
async def update_chat(
        chat_id: int,
        data: ChatUpdate,
        current_user: User = Depends(get_current_active_user),
        service: ChatService = Depends(get_chat_service)
):
    return ApiResponse(message="Chat updated successfully", data=service.update_chat(chat_id, data, current_user))


@router.post(
    "/{chat_id}/participants",
    response_model=ApiResponse[ParticipantAdded],
    status_code=status.HTTP_201_CREATED
)
async def add_participant(
        chat_id: int,
        data: ParticipantAdd,
        current_user: User = Depends(get_current_active_user),
        service: ChatService = Depends(get_chat_service)
):
    return ApiResponse(
        message="Participant added successfully",
        data=service.add_participant(chat_id, data, current_user)
    )


@router.delete("/{chat_id}/participants/{user_id}", response_model=ApiResponse[ChatMembershipChange])
async def remove_participant(
        chat_id: int,
        user_id: int,
        current_user: User = Depends(get_current_active_user),
        service: ChatService = Depends(get_chat_service)
):
    return ApiResponse(
        message="Participant removed successfully",
        data=service.remove_participant(chat_id, user_id, current_user)
    )


@router.post("/{chat_id}/leave", response_model=ApiResponse[ChatMembershipChange])
async def leave_chat(
        chat_id: int,
        current_user: User = Depends(get_current_active_user),
        service: ChatService = Depends(get_chat_service)
):
    result = service.leave_chat(chat_id, current_user)
    message = "Chat deleted successfully" if result.chat_deleted else "Left chat successfully"
    return ApiResponse(message=message, data=result)
