from datetime import date
from typing import Optional, List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_, func

from messenger.exceptions import Conflict, InvalidOperation, NotFound
from messenger.models.user import User, UserProfile

SEARCH_LIMIT = 10

class UserRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, full_name: str, email: str, hashed_password: str) -> User:
        if await self.get_by_email(email):
            raise Conflict("Email already in use")

        db_user = User(full_name=full_name, email=email, hashed_password=hashed_password)
        self.db.add(db_user)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise Conflict("Email already in use")
        return await self.get_by_id(db_user.id)

    async def get_by_id(self, user_id: int) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_or_404(self, user_id: int) -> User:
        user = await self.get_by_id(user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    async def get_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def get_profile_by_username(self, username: str) -> Optional[UserProfile]:
        result = await self.db.execute(select(UserProfile).where(UserProfile.username == username))
        return result.scalar_one_or_none()

    async def search(self, user_id: int, query: Optional[str]) -> List[User]:
        """Case-insensitive match on full name or username, the caller excluded."""
        query = (query or "").strip()
        if not query:
            raise InvalidOperation("Query is required")

        pattern = f"%{query.lower()}%"
        result = await self.db.execute(
            select(User).outerjoin(UserProfile).where(
                User.id != user_id,
                or_(
                    func.lower(User.full_name).like(pattern),
                    func.lower(UserProfile.username).like(pattern)
                )
            ).order_by(User.id).limit(SEARCH_LIMIT)
        )
        return list(result.scalars().all())

    async def onboard(
        self,
        user_id: int,
        username: Optional[str],
        bio: Optional[str] = None,
        date_of_birth: Optional[date] = None,
        avatar_url: Optional[str] = None
    ) -> UserProfile:
        username = (username or "").strip()
        if not username:
            raise InvalidOperation("Username is required")
        if await self.get_profile_by_username(username):
            raise Conflict("Username already taken")

        profile = UserProfile(
            user_id=user_id,
            username=username,
            bio=bio or None,
            date_of_birth=date_of_birth,
            avatar_url=avatar_url
        )
        self.db.add(profile)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise Conflict("Username already taken or profile already exists")
        await self.db.refresh(profile)
        return profile

    async def update_profile(self, user_id: int, profile_data: dict) -> UserProfile:
        """Apply the keys present in ``profile_data``; creates a default profile if missing."""
        user = await self.get_or_404(user_id)

        if profile_data.get("full_name"):
            user.full_name = profile_data["full_name"]

        profile = user.profile
        if profile is None:
            profile = UserProfile(user_id=user_id, username=f"user_{user_id}")
            self.db.add(profile)

        for field in ("bio", "date_of_birth", "avatar_url"):
            if profile_data.get(field) is not None:
                setattr(profile, field, profile_data[field])

        await self.db.commit()
        await self.db.refresh(profile)
        return profile
