from sqlalchemy import Column, Integer, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship
from .base import BaseModel

class TypingStatus(BaseModel):
    __tablename__ = "typing_statuses"
    
    conversation_id = Column(Integer, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False)
    
    user = relationship("User")
    
    # One row per pair, overwritten on every ping
    __table_args__ = (
        UniqueConstraint("conversation_id", "user_id", name="unique_conversation_user_typing"),
    )
