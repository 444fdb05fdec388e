from sqlalchemy import Column, String, Boolean, Integer, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from .base import BaseModel

class Conversation(BaseModel):
    __tablename__ = "conversations"
    
    name = Column(String(100), nullable=True)  # groups only
    is_group = Column(Boolean, default=False, nullable=False)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    # "<low id>:<high id>" for direct conversations, NULL for groups.
    # Unique so two racing "open DM" requests cannot both create one.
    direct_key = Column(String(64), nullable=True, unique=True)
    
    # Relationships
    created_by = relationship("User", foreign_keys=[created_by_id], back_populates="created_conversations")
    participants = relationship("Participant", back_populates="conversation", cascade="all, delete-orphan")
    messages = relationship("Message", back_populates="conversation", cascade="all, delete-orphan")
    theme = relationship("ConversationTheme", back_populates="conversation", uselist=False, cascade="all, delete-orphan")

    @staticmethod
    def direct_key_for(user_id1: int, user_id2: int) -> str:
        low, high = sorted((user_id1, user_id2))
        return f"{low}:{high}"


class Participant(BaseModel):
    __tablename__ = "participants"
    
    conversation_id = Column(Integer, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    
    # Relationships
    conversation = relationship("Conversation", back_populates="participants")
    user = relationship("User", back_populates="participations")
    
    __table_args__ = (
        UniqueConstraint("conversation_id", "user_id", name="unique_conversation_participant"),
    )


class ConversationTheme(BaseModel):
    """Chat colours, shared by every participant of the conversation."""

    __tablename__ = "conversation_themes"
    
    conversation_id = Column(Integer, ForeignKey("conversations.id", ondelete="CASCADE"), unique=True, nullable=False)
    bg_color = Column(String(32), nullable=True)
    text_color = Column(String(32), nullable=True)
    
    conversation = relationship("Conversation", back_populates="theme")
