from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime

from messenger.schemas.message import MessageResponse
from messenger.schemas.user import UserSummary

class ConversationResponse(BaseModel):
    id: int
    is_group: bool
    name: Optional[str] = None
    created_by_id: int
    created_at: datetime
    participants: List[UserSummary]

    @classmethod
    def from_conversation(cls, conversation) -> "ConversationResponse":
        return cls(
            id=conversation.id,
            is_group=conversation.is_group,
            name=conversation.name,
            created_by_id=conversation.created_by_id,
            created_at=conversation.created_at,
            participants=[UserSummary.from_user(participant.user) for participant in conversation.participants]
        )

class ConversationListItem(ConversationResponse):
    last_message: Optional[MessageResponse] = None
    unread_count: int = 0
    visible_from: Optional[datetime] = None

    @classmethod
    def from_overview(cls, overview) -> "ConversationListItem":
        base = ConversationResponse.from_conversation(overview.conversation)
        return cls(
            **base.model_dump(),
            last_message=MessageResponse.from_message(overview.last_message, include_receipts=False) if overview.last_message else None,
            unread_count=overview.unread_count,
            visible_from=overview.visible_from
        )

class ConversationListResponse(BaseModel):
    conversations: List[ConversationListItem]

class OpenDirectMessage(BaseModel):
    target_user_id: Optional[int] = None

class CreateGroup(BaseModel):
    name: Optional[str] = None
    member_ids: List[int] = []

class ThemeUpdate(BaseModel):
    bg_color: Optional[str] = None
    text_color: Optional[str] = None

class ThemeResponse(BaseModel):
    conversation_id: int
    bg_color: Optional[str] = None
    text_color: Optional[str] = None
    
    class Config:
        from_attributes = True
