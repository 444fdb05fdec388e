from datetime import datetime
from enum import Enum as PyEnum
from typing import Dict, List, Optional, Set

from sqlalchemy import select, update, and_
from sqlalchemy.ext.asyncio import AsyncSession

from messenger.models.base import utcnow
from messenger.models.message import Message
from messenger.models.visibility import ConversationHide, MessageHide
from messenger.repositories.base import upsert_insert


class VisibilityState(PyEnum):
    VISIBLE_FULL = "visible_full"
    HIDDEN = "hidden"
    VISIBLE_WINDOWED = "visible_windowed"


def visible_messages_clause(user_id: int, visible_from: Optional[datetime] = None, include_deleted: bool = False):
    """WHERE clause selecting the messages ``user_id`` may currently see.

    Every read path (history, attachments, preview, unread count) filters
    through this so that message hides, the restart window and tombstones
    are applied the same way everywhere.
    """
    clauses = [~Message.hides.any(MessageHide.user_id == user_id)]
    if visible_from is not None:
        clauses.append(Message.created_at >= visible_from)
    if not include_deleted:
        clauses.append(Message.deleted_at.is_(None))
    return and_(*clauses)


class VisibilityRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_hide(self, conversation_id: int, user_id: int) -> Optional[ConversationHide]:
        result = await self.db.execute(
            select(ConversationHide).where(
                and_(
                    ConversationHide.conversation_id == conversation_id,
                    ConversationHide.user_id == user_id
                )
            )
            # windows are moved with bulk UPDATEs, never trust the identity map here
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_state(self, conversation_id: int, user_id: int) -> VisibilityState:
        hide = await self.get_hide(conversation_id, user_id)
        if hide is None:
            return VisibilityState.VISIBLE_FULL
        if hide.visible_from is None:
            return VisibilityState.HIDDEN
        return VisibilityState.VISIBLE_WINDOWED

    async def get_visible_from(self, conversation_id: int, user_id: int) -> Optional[datetime]:
        """Start of the user's window, or None when there is no window.

        Only meaningful for conversations that are not HIDDEN.
        """
        result = await self.db.execute(
            select(ConversationHide.visible_from).where(
                and_(
                    ConversationHide.conversation_id == conversation_id,
                    ConversationHide.user_id == user_id
                )
            )
        )
        return result.scalar_one_or_none()

    async def hidden_conversation_ids(self, user_id: int) -> Set[int]:
        result = await self.db.execute(
            select(ConversationHide.conversation_id).where(
                and_(ConversationHide.user_id == user_id, ConversationHide.visible_from.is_(None))
            )
        )
        return set(result.scalars().all())

    async def windows_for_user(self, user_id: int) -> Dict[int, datetime]:
        result = await self.db.execute(
            select(ConversationHide.conversation_id, ConversationHide.visible_from).where(
                and_(ConversationHide.user_id == user_id, ConversationHide.visible_from.is_not(None))
            )
        )
        return {conversation_id: visible_from for conversation_id, visible_from in result.all()}

    async def hide_conversation(self, conversation_id: int, user_id: int, now: datetime = None) -> None:
        """Move the user to HIDDEN from any state.

        Re-hiding a restarted conversation clears its window again.
        """
        now = now or utcnow()
        stmt = upsert_insert(self.db, ConversationHide).values(
            conversation_id=conversation_id,
            user_id=user_id,
            hidden_at=now,
            visible_from=None,
            created_at=now,
            updated_at=now,
        ).on_conflict_do_update(
            index_elements=["conversation_id", "user_id"],
            set_={"hidden_at": now, "visible_from": None, "updated_at": now},
        )
        await self.db.execute(stmt)
        await self.db.commit()

    async def restore_on_new_message(self, conversation_id: int, timestamp: datetime) -> int:
        """Open a window at ``timestamp`` for every participant who hid the conversation.

        A single conditional UPDATE, so two racing sends can never leave the
        window unset and an existing window is never moved. Does not commit:
        the caller commits together with the message rows.
        """
        result = await self.db.execute(
            update(ConversationHide)
            .where(
                and_(
                    ConversationHide.conversation_id == conversation_id,
                    ConversationHide.visible_from.is_(None)
                )
            )
            .values(visible_from=timestamp, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def restart_window(self, conversation_id: int, user_id: int, now: datetime = None) -> bool:
        """Narrow an existing hide record to "from now on". No-op without a record."""
        now = now or utcnow()
        result = await self.db.execute(
            update(ConversationHide)
            .where(
                and_(
                    ConversationHide.conversation_id == conversation_id,
                    ConversationHide.user_id == user_id
                )
            )
            .values(visible_from=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount > 0

    async def hide_message(self, message_id: int, user_id: int) -> None:
        now = utcnow()
        stmt = upsert_insert(self.db, MessageHide).values(
            message_id=message_id,
            user_id=user_id,
            created_at=now,
            updated_at=now,
        ).on_conflict_do_nothing(index_elements=["message_id", "user_id"])
        await self.db.execute(stmt)
        await self.db.commit()

    async def hidden_message_ids(self, user_id: int, message_ids: List[int]) -> Set[int]:
        if not message_ids:
            return set()
        result = await self.db.execute(
            select(MessageHide.message_id).where(
                and_(MessageHide.user_id == user_id, MessageHide.message_id.in_(message_ids))
            )
        )
        return set(result.scalars().all())
