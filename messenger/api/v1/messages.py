from typing import List, Optional
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from messenger.config import settings
from messenger.database import get_db
from messenger.repositories.message_repository import MessageRepository, REACTION_ADDED
from messenger.repositories.presence_repository import PresenceRepository
from messenger.schemas.message import (
    AttachmentResponse,
    MessagePageResponse,
    MessageResponse,
    PresenceResponse,
    ReactionToggle,
    ReactionToggleResponse,
    SendMessageResponse,
    SuccessResponse,
    TypingPingResponse,
    TypingResponse,
)
from messenger.auth import get_current_user
from messenger.models.user import User
from messenger.storage import BlobStore, UploadedFile, get_blob_store

router = APIRouter()

@router.patch("/presence", response_model=PresenceResponse)
async def touch_presence(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    last_seen_at = await PresenceRepository(db).touch_presence(current_user.id)
    return PresenceResponse(last_seen_at=last_seen_at)

@router.post("/{conversation_id}/typing", response_model=TypingPingResponse)
async def ping_typing(
    conversation_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    expires_at = await PresenceRepository(db).ping_typing(current_user.id, conversation_id)
    return TypingPingResponse(expires_at=expires_at)

@router.get("/{conversation_id}/typing", response_model=TypingResponse)
async def list_typing(
    conversation_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    user_ids = await PresenceRepository(db).list_typing(current_user.id, conversation_id)
    return TypingResponse(typing_user_ids=user_ids)

@router.post("/{message_id}/react", response_model=ReactionToggleResponse)
async def toggle_reaction(
    message_id: int,
    data: ReactionToggle,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    outcome = await MessageRepository(db).toggle_reaction(current_user.id, message_id, data.emoji)
    return ReactionToggleResponse(added=outcome == REACTION_ADDED, removed=outcome != REACTION_ADDED)

@router.post("/{message_id}/hide", response_model=SuccessResponse)
async def hide_message(
    message_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Hide someone else's message for the current user only"""
    await MessageRepository(db).hide_message(current_user.id, message_id)
    return SuccessResponse()

@router.delete("/{message_id}", response_model=SuccessResponse)
async def delete_message(
    message_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Soft delete your own message for everyone"""
    await MessageRepository(db).delete_message(current_user.id, message_id)
    return SuccessResponse()

@router.get("/{conversation_id}/attachments", response_model=List[AttachmentResponse])
async def list_attachments(
    conversation_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    messages = await MessageRepository(db).list_attachments(current_user.id, conversation_id)
    return [AttachmentResponse.from_message(message) for message in messages]

@router.get("/{conversation_id}", response_model=MessagePageResponse)
async def list_messages(
    conversation_id: int,
    cursor: Optional[str] = Query(None, description="next_cursor of the previous page"),
    limit: int = Query(settings.MESSAGE_PAGE_SIZE, ge=1, le=settings.MAX_MESSAGE_PAGE_SIZE),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    page = await MessageRepository(db).list_messages(current_user.id, conversation_id, cursor=cursor, limit=limit)
    return MessagePageResponse(
        messages=[MessageResponse.from_message(message) for message in page.messages],
        next_cursor=page.next_cursor
    )

@router.post("/{conversation_id}", response_model=SendMessageResponse, status_code=status.HTTP_201_CREATED)
async def send_message(
    conversation_id: int,
    content: Optional[str] = Form(None),
    files: Optional[List[UploadFile]] = File(None),
    db: AsyncSession = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user)
):
    uploads = [
        UploadedFile(filename=upload.filename, content_type=upload.content_type, data=await upload.read())
        for upload in files or []
        if upload.filename
    ]
    messages = await MessageRepository(db).send_message(
        conversation_id,
        current_user.id,
        content=content,
        files=uploads,
        blob_store=blob_store
    )
    return SendMessageResponse(messages=[MessageResponse.from_message(message) for message in messages])
