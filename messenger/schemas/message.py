from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime

from messenger.models.message import MessageType
from messenger.schemas.user import UserSummary

class ReadReceiptResponse(BaseModel):
    user_id: int
    read_at: datetime
    
    class Config:
        from_attributes = True

class ReactionResponse(BaseModel):
    user_id: int
    emoji: str
    
    class Config:
        from_attributes = True

class MessageResponse(BaseModel):
    id: int
    conversation_id: int
    sender_id: int
    sender: Optional[UserSummary] = None
    type: MessageType
    content: Optional[str] = None
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    group_id: Optional[str] = None
    created_at: datetime
    deleted_at: Optional[datetime] = None
    is_deleted: bool = False
    reads: List[ReadReceiptResponse] = []
    reactions: List[ReactionResponse] = []

    @classmethod
    def from_message(cls, message, include_receipts: bool = True) -> "MessageResponse":
        """Serialize a message; a soft-deleted one becomes a tombstone without content."""
        deleted = message.deleted_at is not None
        data = {
            "id": message.id,
            "conversation_id": message.conversation_id,
            "sender_id": message.sender_id,
            "sender": UserSummary.from_user(message.sender) if message.sender else None,
            "type": message.type,
            "group_id": message.group_id,
            "created_at": message.created_at,
            "deleted_at": message.deleted_at,
            "is_deleted": deleted,
        }
        if not deleted:
            data.update(
                content=message.content,
                file_url=message.file_url,
                file_name=message.file_name,
                file_size=message.file_size,
            )
            if include_receipts:
                data.update(
                    reads=[ReadReceiptResponse.model_validate(read) for read in message.reads],
                    reactions=[ReactionResponse.model_validate(reaction) for reaction in message.reactions],
                )
        return cls(**data)

class MessagePageResponse(BaseModel):
    messages: List[MessageResponse]  # oldest first
    next_cursor: Optional[str] = None

class SendMessageResponse(BaseModel):
    messages: List[MessageResponse]

class AttachmentResponse(BaseModel):
    id: int
    type: MessageType
    file_url: str
    file_name: Optional[str] = None
    created_at: datetime
    sender: Optional[UserSummary] = None

    @classmethod
    def from_message(cls, message) -> "AttachmentResponse":
        return cls(
            id=message.id,
            type=message.type,
            file_url=message.file_url,
            file_name=message.file_name,
            created_at=message.created_at,
            sender=UserSummary.from_user(message.sender) if message.sender else None
        )

class ReactionToggle(BaseModel):
    emoji: Optional[str] = None

class ReactionToggleResponse(BaseModel):
    added: bool
    removed: bool

class TypingResponse(BaseModel):
    typing_user_ids: List[int]

class TypingPingResponse(BaseModel):
    ok: bool = True
    expires_at: datetime

class PresenceResponse(BaseModel):
    ok: bool = True
    last_seen_at: datetime

class SuccessResponse(BaseModel):
    success: bool = True
