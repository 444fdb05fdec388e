from sqlalchemy import Column, Integer, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship
from .base import BaseModel, utcnow

class ConversationHide(BaseModel):
    """Per-user hide state of a conversation.

    No row: the whole history is visible.
    ``visible_from`` NULL: hidden, the conversation is left out of the list.
    ``visible_from`` set: visible again, but only messages created at or
    after that moment are shown to this user.
    """

    __tablename__ = "conversation_hides"
    
    conversation_id = Column(Integer, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    hidden_at = Column(DateTime, default=utcnow, nullable=False)
    visible_from = Column(DateTime, nullable=True)
    
    conversation = relationship("Conversation")
    user = relationship("User")
    
    __table_args__ = (
        UniqueConstraint("conversation_id", "user_id", name="unique_conversation_user_hide"),
    )


class MessageHide(BaseModel):
    __tablename__ = "message_hides"
    
    message_id = Column(Integer, ForeignKey("messages.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    
    message = relationship("Message", back_populates="hides")
    user = relationship("User")
    
    __table_args__ = (
        UniqueConstraint("message_id", "user_id", name="unique_message_user_hide"),
    )
