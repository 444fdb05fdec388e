from sqlalchemy import Column, Integer, ForeignKey, Text, DateTime, String, Enum
from sqlalchemy.orm import relationship
from enum import Enum as PyEnum
from .base import BaseModel

class MessageType(PyEnum):
    TEXT = "TEXT"
    IMAGE = "IMAGE"
    FILE = "FILE"

class Message(BaseModel):
    __tablename__ = "messages"
    
    conversation_id = Column(Integer, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(Enum(MessageType), nullable=False, default=MessageType.TEXT)
    content = Column(Text, nullable=True)  # TEXT only
    file_url = Column(String(500), nullable=True)  # IMAGE / FILE only
    file_name = Column(String(255), nullable=True)
    file_size = Column(Integer, nullable=True)
    # Shared by the files and caption that were sent in one request
    group_id = Column(String(36), nullable=True, index=True)
    # Soft delete: the row stays so ids and ordering do not shift
    deleted_at = Column(DateTime, nullable=True)
    
    # Relationships
    conversation = relationship("Conversation", back_populates="messages")
    sender = relationship("User", foreign_keys=[sender_id], back_populates="sent_messages")
    reads = relationship("MessageRead", back_populates="message", cascade="all, delete-orphan")
    reactions = relationship("MessageReaction", back_populates="message", cascade="all, delete-orphan")
    hides = relationship("MessageHide", back_populates="message", cascade="all, delete-orphan")

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
