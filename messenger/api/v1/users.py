from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from messenger.database import get_db
from messenger.exceptions import Conflict, InvalidOperation
from messenger.repositories.user_repository import UserRepository
from messenger.schemas.user import ProfileResponse, PublicUserResponse
from messenger.auth import get_current_user
from messenger.models.user import User
from messenger.storage import BlobStore, get_blob_store

router = APIRouter()

async def _store_avatar(avatar: Optional[UploadFile], blob_store: BlobStore) -> Optional[str]:
    if avatar is None or not avatar.filename:
        return None
    return await blob_store.store(await avatar.read(), "avatars", avatar.filename)

@router.get("/search", response_model=List[PublicUserResponse])
async def search_users(
    q: Optional[str] = Query(None, description="Part of a full name or username"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await UserRepository(db).search(current_user.id, q)

# must stay above /{user_id}
@router.post("/onboarding", response_model=ProfileResponse, status_code=status.HTTP_201_CREATED)
async def onboarding(
    username: Optional[str] = Form(None),
    bio: Optional[str] = Form(None),
    date_of_birth: Optional[date] = Form(None),
    avatar: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user)
):
    user_repo = UserRepository(db)
    # reject before uploading anything
    if not username or not username.strip():
        raise InvalidOperation("Username is required")
    if await user_repo.get_profile_by_username(username.strip()):
        raise Conflict("Username already taken")

    return await user_repo.onboard(
        current_user.id,
        username,
        bio=bio,
        date_of_birth=date_of_birth,
        avatar_url=await _store_avatar(avatar, blob_store)
    )

@router.patch("/profile", response_model=ProfileResponse)
async def update_profile(
    full_name: Optional[str] = Form(None),
    bio: Optional[str] = Form(None),
    date_of_birth: Optional[date] = Form(None),
    avatar: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user)
):
    return await UserRepository(db).update_profile(current_user.id, {
        "full_name": full_name,
        "bio": bio,
        "date_of_birth": date_of_birth,
        "avatar_url": await _store_avatar(avatar, blob_store),
    })

@router.get("/{user_id}", response_model=PublicUserResponse)
async def get_user_by_id(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await UserRepository(db).get_or_404(user_id)
