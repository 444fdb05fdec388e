from sqlalchemy import Column, Integer, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship
from .base import BaseModel, utcnow

class MessageRead(BaseModel):
    __tablename__ = "message_reads"
    
    message_id = Column(Integer, ForeignKey("messages.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    read_at = Column(DateTime, default=utcnow, nullable=False)
    
    # Relationships
    message = relationship("Message", back_populates="reads")
    user = relationship("User")
    
    # A user reads a message at most once
    __table_args__ = (
        UniqueConstraint("message_id", "user_id", name="unique_message_user_read"),
    )
