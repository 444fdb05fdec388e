from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from messenger.database import get_db
from messenger.repositories.conversation_repository import ConversationRepository
from messenger.schemas.conversation import (
    ConversationResponse,
    ConversationListItem,
    ConversationListResponse,
    OpenDirectMessage,
    CreateGroup,
    ThemeUpdate,
    ThemeResponse,
)
from messenger.schemas.message import SuccessResponse
from messenger.auth import get_current_user
from messenger.models.user import User

router = APIRouter()

@router.get("/", response_model=ConversationListResponse)
async def list_conversations(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Visible conversations with last-message preview and unread count"""
    overviews = await ConversationRepository(db).list_conversations(current_user.id)
    return {"conversations": [ConversationListItem.from_overview(overview) for overview in overviews]}

@router.post("/dm", response_model=ConversationResponse)
async def open_direct_message(
    data: OpenDirectMessage,
    response: Response,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Get the direct conversation with a user, creating it if needed"""
    conversation, created = await ConversationRepository(db).open_direct_message(
        current_user.id, data.target_user_id
    )
    if created:
        response.status_code = status.HTTP_201_CREATED
    return ConversationResponse.from_conversation(conversation)

@router.post("/group", response_model=ConversationResponse, status_code=status.HTTP_201_CREATED)
async def create_group(
    data: CreateGroup,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    conversation = await ConversationRepository(db).create_group(current_user.id, data.name, data.member_ids)
    return ConversationResponse.from_conversation(conversation)

@router.get("/{conversation_id}/theme", response_model=ThemeResponse)
async def get_theme(
    conversation_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    theme = await ConversationRepository(db).get_theme(conversation_id, current_user.id)
    if theme is None:
        return ThemeResponse(conversation_id=conversation_id)
    return theme

@router.patch("/{conversation_id}/theme", response_model=ThemeResponse)
async def update_theme(
    conversation_id: int,
    data: ThemeUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await ConversationRepository(db).set_theme(
        conversation_id, current_user.id, data.model_dump(exclude_unset=True)
    )

@router.get("/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(
    conversation_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    conversation = await ConversationRepository(db).get_for_participant(conversation_id, current_user.id)
    return ConversationResponse.from_conversation(conversation)

@router.delete("/{conversation_id}", response_model=SuccessResponse)
async def hide_conversation(
    conversation_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Hide the conversation for the current user only; nothing is deleted"""
    await ConversationRepository(db).hide(conversation_id, current_user.id)
    return SuccessResponse()
