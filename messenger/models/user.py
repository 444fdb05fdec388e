from sqlalchemy import Column, String, Boolean, DateTime, Date, Integer, ForeignKey, Text
from sqlalchemy.orm import relationship
from .base import BaseModel

class User(BaseModel):
    __tablename__ = "users"
    
    full_name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    last_seen_at = Column(DateTime, nullable=True)
    
    profile = relationship("UserProfile", back_populates="user", uselist=False, lazy="selectin")
    sent_messages = relationship("Message", foreign_keys="Message.sender_id", back_populates="sender")
    participations = relationship("Participant", back_populates="user")
    created_conversations = relationship("Conversation", foreign_keys="Conversation.created_by_id", back_populates="created_by")


class UserProfile(BaseModel):
    __tablename__ = "user_profiles"
    
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    username = Column(String(50), unique=True, index=True, nullable=False)
    bio = Column(Text, nullable=True)
    date_of_birth = Column(Date, nullable=True)
    avatar_url = Column(String(500), nullable=True)
    
    user = relationship("User", back_populates="profile")
