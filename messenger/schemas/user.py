from pydantic import BaseModel, EmailStr
from typing import Optional
from datetime import date, datetime

class UserCreate(BaseModel):
    full_name: Optional[str] = None
    email: Optional[EmailStr] = None
    password: Optional[str] = None

class UserLogin(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None

class ProfileResponse(BaseModel):
    username: str
    bio: Optional[str] = None
    date_of_birth: Optional[date] = None
    avatar_url: Optional[str] = None
    
    class Config:
        from_attributes = True

class UserResponse(BaseModel):
    id: int
    full_name: str
    email: str
    last_seen_at: Optional[datetime] = None
    profile: Optional[ProfileResponse] = None
    
    class Config:
        from_attributes = True

class PublicUserResponse(BaseModel):
    """What other users may see: no email."""
    id: int
    full_name: str
    last_seen_at: Optional[datetime] = None
    profile: Optional[ProfileResponse] = None
    
    class Config:
        from_attributes = True

class UserSummary(BaseModel):
    id: int
    full_name: str
    username: Optional[str] = None
    avatar_url: Optional[str] = None
    last_seen_at: Optional[datetime] = None

    @classmethod
    def from_user(cls, user) -> "UserSummary":
        profile = user.profile
        return cls(
            id=user.id,
            full_name=user.full_name,
            username=profile.username if profile else None,
            avatar_url=profile.avatar_url if profile else None,
            last_seen_at=user.last_seen_at
        )

class AuthResponse(BaseModel):
    user: UserResponse
    access_token: str
    token_type: str = "bearer"
    expires_in: int
