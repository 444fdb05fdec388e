import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, List, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, func
from sqlalchemy.orm import selectinload

from messenger.exceptions import Conflict, InvalidOperation, NotAuthorized, NotFound
from messenger.models.conversation import Conversation, Participant, ConversationTheme
from messenger.models.message import Message
from messenger.models.message_read import MessageRead
from messenger.models.user import User
from messenger.repositories.visibility_repository import VisibilityRepository, visible_messages_clause

logger = logging.getLogger(__name__)


@dataclass
class ConversationOverview:
    conversation: Conversation
    last_message: Optional[Message]
    unread_count: int
    visible_from: Optional[datetime] = None

    @property
    def sort_key(self) -> Tuple[datetime, int]:
        # windowed conversations with nothing new sort by their own creation time
        activity = self.last_message.created_at if self.last_message else self.conversation.created_at
        return activity, self.conversation.id


class ConversationRepository:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.visibility = VisibilityRepository(db)

    def _with_participants(self):
        return selectinload(Conversation.participants).selectinload(Participant.user)

    async def get_by_id(self, conversation_id: int) -> Optional[Conversation]:
        result = await self.db.execute(
            select(Conversation).options(
                self._with_participants()
            ).where(Conversation.id == conversation_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def exists(self, conversation_id: int) -> bool:
        result = await self.db.execute(select(Conversation.id).where(Conversation.id == conversation_id))
        return result.scalar_one_or_none() is not None

    async def is_member(self, conversation_id: int, user_id: int) -> bool:
        result = await self.db.execute(
            select(Participant.id).where(
                and_(Participant.conversation_id == conversation_id, Participant.user_id == user_id)
            )
        )
        return result.scalar_one_or_none() is not None

    async def ensure_participant(self, conversation_id: int, user_id: int) -> None:
        if not await self.is_member(conversation_id, user_id):
            if not await self.exists(conversation_id):
                raise NotFound("Conversation not found")
            raise NotAuthorized("Not a participant")

    async def get_for_participant(self, conversation_id: int, user_id: int) -> Conversation:
        await self.ensure_participant(conversation_id, user_id)
        return await self.get_by_id(conversation_id)

    async def get_participant_ids(self, conversation_id: int) -> List[int]:
        result = await self.db.execute(
            select(Participant.user_id).where(Participant.conversation_id == conversation_id)
        )
        return list(result.scalars().all())

    async def get_direct_conversation(self, user_id1: int, user_id2: int) -> Optional[Conversation]:
        result = await self.db.execute(
            select(Conversation).options(
                self._with_participants()
            ).where(
                and_(
                    Conversation.is_group.is_(False),
                    Conversation.direct_key == Conversation.direct_key_for(user_id1, user_id2)
                )
            )
        )
        return result.scalar_one_or_none()

    async def open_direct_message(self, user_id: int, target_user_id: Optional[int]) -> Tuple[Conversation, bool]:
        """Return the DM between the two users, creating it if needed.

        The second element is True when the conversation was created. When the
        caller had hidden an existing DM, their window restarts at "now" so
        reopening never brings back old history.
        """
        if target_user_id is None:
            raise InvalidOperation("target_user_id is required")
        if target_user_id == user_id:
            raise InvalidOperation("Cannot open a conversation with yourself")

        existing = await self.get_direct_conversation(user_id, target_user_id)
        if existing:
            if await self.visibility.restart_window(existing.id, user_id):
                logger.info("User %s reopened hidden conversation %s", user_id, existing.id)
            return existing, False

        target = await self.db.execute(select(User.id).where(User.id == target_user_id))
        if target.scalar_one_or_none() is None:
            raise NotFound("User not found")

        conversation = Conversation(
            is_group=False,
            created_by_id=user_id,
            direct_key=Conversation.direct_key_for(user_id, target_user_id)
        )
        self.db.add(conversation)
        try:
            await self.db.flush()
            self.db.add(Participant(conversation_id=conversation.id, user_id=user_id))
            self.db.add(Participant(conversation_id=conversation.id, user_id=target_user_id))
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.warning("Lost direct conversation race between %s and %s", user_id, target_user_id)
            raise Conflict("Conversation is being created, retry the request")

        return await self.get_by_id(conversation.id), True

    async def create_group(self, creator_id: int, name: Optional[str], member_ids: List[int]) -> Conversation:
        if not name or not name.strip() or not member_ids:
            raise InvalidOperation("name and member_ids are required")

        # creator first, then members in request order without duplicates
        all_members = list(dict.fromkeys([creator_id, *member_ids]))
        result = await self.db.execute(select(User.id).where(User.id.in_(all_members)))
        found = set(result.scalars().all())
        missing = [member_id for member_id in all_members if member_id not in found]
        if missing:
            raise NotFound(f"User with ID {missing[0]} not found")

        conversation = Conversation(name=name.strip(), is_group=True, created_by_id=creator_id)
        self.db.add(conversation)
        await self.db.flush()

        for member_id in all_members:
            self.db.add(Participant(conversation_id=conversation.id, user_id=member_id))

        await self.db.commit()
        return await self.get_by_id(conversation.id)

    async def hide(self, conversation_id: int, user_id: int) -> None:
        await self.ensure_participant(conversation_id, user_id)
        await self.visibility.hide_conversation(conversation_id, user_id)

    async def latest_visible_message(self, conversation_id: int, user_id: int, visible_from: Optional[datetime] = None) -> Optional[Message]:
        result = await self.db.execute(
            select(Message).options(
                selectinload(Message.sender)
            ).where(
                and_(
                    Message.conversation_id == conversation_id,
                    visible_messages_clause(user_id, visible_from)
                )
            ).order_by(Message.created_at.desc(), Message.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def unread_count(self, conversation_id: int, user_id: int, visible_from: Optional[datetime] = None) -> int:
        result = await self.db.execute(
            select(func.count(Message.id)).where(
                and_(
                    Message.conversation_id == conversation_id,
                    Message.sender_id != user_id,
                    ~Message.reads.any(MessageRead.user_id == user_id),
                    visible_messages_clause(user_id, visible_from)
                )
            )
        )
        return result.scalar() or 0

    async def list_conversations(self, user_id: int) -> List[ConversationOverview]:
        """Conversations the user currently sees, most recent activity first."""
        hidden = await self.visibility.hidden_conversation_ids(user_id)
        windows = await self.visibility.windows_for_user(user_id)

        stmt = select(Conversation).join(Participant).options(
            self._with_participants()
        ).where(Participant.user_id == user_id)
        if hidden:
            stmt = stmt.where(Conversation.id.not_in(sorted(hidden)))
        result = await self.db.execute(stmt.execution_options(populate_existing=True))

        overviews = []
        for conversation in result.scalars().unique().all():
            visible_from = windows.get(conversation.id)
            overviews.append(ConversationOverview(
                conversation=conversation,
                last_message=await self.latest_visible_message(conversation.id, user_id, visible_from),
                unread_count=await self.unread_count(conversation.id, user_id, visible_from),
                visible_from=visible_from
            ))

        overviews.sort(key=lambda overview: overview.sort_key, reverse=True)
        return overviews

    async def get_theme(self, conversation_id: int, user_id: int) -> Optional[ConversationTheme]:
        await self.ensure_participant(conversation_id, user_id)
        result = await self.db.execute(
            select(ConversationTheme).where(ConversationTheme.conversation_id == conversation_id)
        )
        return result.scalar_one_or_none()

    async def set_theme(self, conversation_id: int, user_id: int, theme_data: dict) -> ConversationTheme:
        """Update the shared theme; only keys present in ``theme_data`` change."""
        theme = await self.get_theme(conversation_id, user_id)
        if theme is None:
            theme = ConversationTheme(conversation_id=conversation_id)
            self.db.add(theme)

        for field in ("bg_color", "text_color"):
            if field in theme_data:
                setattr(theme, field, theme_data[field])

        await self.db.commit()
        await self.db.refresh(theme)
        return theme
