from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select, update, delete, and_
from sqlalchemy.ext.asyncio import AsyncSession

from messenger.config import settings
from messenger.models.base import utcnow
from messenger.models.typing_status import TypingStatus
from messenger.models.user import User
from messenger.repositories.base import upsert_insert
from messenger.repositories.conversation_repository import ConversationRepository


class PresenceRepository:
    """Typing indicators and last-seen timestamps.

    Expiry is evaluated when reading; stale typing rows are harmless and
    are swept opportunistically when someone pings the same conversation.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.conversations = ConversationRepository(db)

    async def ping_typing(self, user_id: int, conversation_id: int, now: Optional[datetime] = None) -> datetime:
        await self.conversations.ensure_participant(conversation_id, user_id)

        now = now or utcnow()
        expires_at = now + timedelta(seconds=settings.TYPING_TTL_SECONDS)
        stmt = upsert_insert(self.db, TypingStatus).values(
            conversation_id=conversation_id,
            user_id=user_id,
            expires_at=expires_at,
            created_at=now,
            updated_at=now,
        ).on_conflict_do_update(
            index_elements=["conversation_id", "user_id"],
            set_={"expires_at": expires_at, "updated_at": now},
        )
        await self.db.execute(stmt)
        await self.db.execute(
            delete(TypingStatus).where(
                and_(TypingStatus.conversation_id == conversation_id, TypingStatus.expires_at <= now)
            ).execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return expires_at

    async def list_typing(self, user_id: int, conversation_id: int, now: Optional[datetime] = None) -> List[int]:
        """Ids of the other participants currently typing."""
        await self.conversations.ensure_participant(conversation_id, user_id)

        result = await self.db.execute(
            select(TypingStatus.user_id).where(
                and_(
                    TypingStatus.conversation_id == conversation_id,
                    TypingStatus.user_id != user_id,
                    TypingStatus.expires_at > (now or utcnow())
                )
            ).order_by(TypingStatus.user_id)
        )
        return list(result.scalars().all())

    async def touch_presence(self, user_id: int, now: Optional[datetime] = None) -> datetime:
        now = now or utcnow()
        await self.db.execute(
            update(User).where(User.id == user_id)
            .values(last_seen_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return now

    async def get_last_seen(self, user_id: int) -> Optional[datetime]:
        result = await self.db.execute(select(User.last_seen_at).where(User.id == user_id))
        return result.scalar_one_or_none()
