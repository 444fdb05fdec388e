from sqlalchemy import Column, Integer, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import relationship
from .base import BaseModel

class MessageReaction(BaseModel):
    __tablename__ = "message_reactions"
    
    message_id = Column(Integer, ForeignKey("messages.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    emoji = Column(String(32), nullable=False)
    
    message = relationship("Message", back_populates="reactions")
    user = relationship("User")
    
    __table_args__ = (
        UniqueConstraint("message_id", "user_id", "emoji", name="unique_message_user_emoji"),
    )
