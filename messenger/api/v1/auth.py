from datetime import timedelta
from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from messenger.database import get_db
from messenger.exceptions import InvalidOperation
from messenger.repositories.user_repository import UserRepository
from messenger.schemas.user import UserCreate, UserLogin, UserResponse, AuthResponse
from messenger.auth import (
    authenticate_user,
    create_access_token,
    get_current_user,
    get_password_hash,
    get_request_token,
    revoke_token,
)
from messenger.config import settings
from messenger.models.user import User
from messenger.revocation import RevocationStore, get_revocation_store

router = APIRouter()

def _issue_session(response: Response, user: User) -> dict:
    expires = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    token = create_access_token(user.id, expires_delta=expires)
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        token,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        httponly=True,
        secure=not settings.DEBUG,
        samesite="lax",
    )
    return {
        "user": UserResponse.model_validate(user),
        "access_token": token,
        "token_type": "bearer",
        "expires_in": settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    }

@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register_user(user_data: UserCreate, response: Response, db: AsyncSession = Depends(get_db)):
    if not user_data.full_name or not user_data.email or not user_data.password:
        raise InvalidOperation("All fields are required")
    
    user = await UserRepository(db).create(
        full_name=user_data.full_name,
        email=user_data.email,
        hashed_password=get_password_hash(user_data.password)
    )
    return _issue_session(response, user)

@router.post("/login", response_model=AuthResponse)
async def login_user(user_data: UserLogin, response: Response, db: AsyncSession = Depends(get_db)):
    if not user_data.email or not user_data.password:
        raise InvalidOperation("All fields are required")
    
    user = await authenticate_user(db, user_data.email, user_data.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    
    return _issue_session(response, user)

@router.post("/logout")
async def logout_user(
    response: Response,
    token: str = Depends(get_request_token),
    current_user: User = Depends(get_current_user),
    revocation: RevocationStore = Depends(get_revocation_store)
):
    await revoke_token(token, revocation)
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return {"message": "Logged out"}

@router.get("/me", response_model=UserResponse)
async def get_current_user_info(current_user: User = Depends(get_current_user)):
    return current_user
