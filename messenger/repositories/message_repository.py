import logging
import uuid
from dataclasses import dataclass
from typing import Optional, List

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, and_, or_
from sqlalchemy.orm import selectinload

from messenger.config import settings
from messenger.exceptions import Conflict, InvalidOperation, NotAuthorized, NotFound
from messenger.models.base import utcnow
from messenger.models.message import Message, MessageType
from messenger.models.message_read import MessageRead
from messenger.models.message_reaction import MessageReaction
from messenger.models.user import User
from messenger.repositories.base import upsert_insert
from messenger.repositories.conversation_repository import ConversationRepository
from messenger.repositories.visibility_repository import VisibilityRepository, visible_messages_clause
from messenger.storage import BlobStore, UploadedFile, get_blob_store

logger = logging.getLogger(__name__)

REACTION_ADDED = "added"
REACTION_REMOVED = "removed"


@dataclass
class MessagePage:
    messages: List[Message]  # oldest first
    next_cursor: Optional[str] = None


class MessageRepository:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.conversations = ConversationRepository(db)
        self.visibility = VisibilityRepository(db)

    def _message_options(self):
        return (
            selectinload(Message.sender).selectinload(User.profile),
            selectinload(Message.reads),
            selectinload(Message.reactions),
        )

    async def get_by_id(self, message_id: int) -> Optional[Message]:
        result = await self.db.execute(
            select(Message).options(
                *self._message_options()
            ).where(Message.id == message_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _get_or_404(self, message_id: int) -> Message:
        message = await self.get_by_id(message_id)
        if message is None:
            raise NotFound("Message not found")
        return message

    async def send_message(
        self,
        conversation_id: int,
        sender_id: int,
        content: Optional[str] = None,
        files: Optional[List[UploadedFile]] = None,
        blob_store: Optional[BlobStore] = None
    ) -> List[Message]:
        """Append the files (one message each) and the caption to the conversation.

        Files and caption share a ``group_id``. Any participant who had hidden
        the conversation gets a window starting at the first new message, the
        sender included, in the same commit as the messages themselves.
        """
        await self.conversations.ensure_participant(conversation_id, sender_id)

        files = files or []
        text = content.strip() if content else ""
        if not text and not files:
            raise InvalidOperation("Message content or file is required")
        if len(files) > settings.MAX_FILES_PER_MESSAGE:
            raise InvalidOperation(f"At most {settings.MAX_FILES_PER_MESSAGE} files per message")
        for upload in files:
            if upload.size > settings.MAX_UPLOAD_BYTES:
                raise InvalidOperation(f"File too large: {upload.filename}")

        group_id = str(uuid.uuid4()) if files else None
        blob_store = blob_store or get_blob_store()

        messages = []
        for upload in files:
            file_url = await blob_store.store(upload.data, "messages", upload.filename)
            messages.append(Message(
                conversation_id=conversation_id,
                sender_id=sender_id,
                type=MessageType.IMAGE if upload.is_image else MessageType.FILE,
                file_url=file_url,
                file_name=upload.filename,
                file_size=upload.size,
                group_id=group_id
            ))
        if text:
            messages.append(Message(
                conversation_id=conversation_id,
                sender_id=sender_id,
                type=MessageType.TEXT,
                content=text,
                group_id=group_id
            ))

        self.db.add_all(messages)
        try:
            await self.db.flush()
            restored = await self.visibility.restore_on_new_message(conversation_id, messages[0].created_at)
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            stored = [message.file_url for message in messages if message.file_url]
            if stored:
                logger.error(
                    "Saving messages in conversation %s failed, orphaned uploads: %s",
                    conversation_id, ", ".join(stored)
                )
            raise

        if restored:
            logger.info("Conversation %s reappeared for %d participant(s)", conversation_id, restored)

        result = await self.db.execute(
            select(Message).options(
                *self._message_options()
            ).where(Message.id.in_([message.id for message in messages]))
            .order_by(Message.created_at.asc(), Message.id.asc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def _resolve_cursor(self, conversation_id: int, cursor: str):
        try:
            message_id = int(cursor)
        except (TypeError, ValueError):
            raise InvalidOperation("Invalid cursor") from None

        result = await self.db.execute(
            select(Message.id, Message.created_at).where(
                and_(Message.id == message_id, Message.conversation_id == conversation_id)
            )
        )
        anchor = result.one_or_none()
        if anchor is None:
            raise InvalidOperation("Invalid cursor")
        return anchor

    async def list_messages(
        self,
        user_id: int,
        conversation_id: int,
        cursor: Optional[str] = None,
        limit: Optional[int] = None
    ) -> MessagePage:
        """One page of the history the user can see, oldest first.

        Pages run backwards in time: ``cursor`` is the ``next_cursor`` of the
        previous page, i.e. the id of its oldest message. Tombstones are kept
        in the page so cursors stay stable for every reader. Unread messages
        in the page are marked read for the caller.
        """
        if limit is None:
            limit = settings.MESSAGE_PAGE_SIZE
        if limit < 1:
            raise InvalidOperation("limit must be positive")

        await self.conversations.ensure_participant(conversation_id, user_id)
        visible_from = await self.visibility.get_visible_from(conversation_id, user_id)

        stmt = select(Message).options(
            *self._message_options()
        ).where(
            and_(
                Message.conversation_id == conversation_id,
                visible_messages_clause(user_id, visible_from, include_deleted=True)
            )
        )
        if cursor is not None:
            anchor = await self._resolve_cursor(conversation_id, cursor)
            stmt = stmt.where(
                or_(
                    Message.created_at < anchor.created_at,
                    and_(Message.created_at == anchor.created_at, Message.id < anchor.id)
                )
            )

        result = await self.db.execute(
            stmt.order_by(Message.created_at.desc(), Message.id.desc())
            .limit(limit + 1)
            .execution_options(populate_existing=True)
        )
        rows = list(result.scalars().all())
        has_more = len(rows) > limit
        page = rows[:limit]

        await self.mark_read(user_id, page)

        page.reverse()
        return MessagePage(
            messages=page,
            next_cursor=str(page[0].id) if has_more else None
        )

    async def mark_read(self, user_id: int, messages: List[Message]) -> int:
        """Insert read receipts for messages the user did not send. Duplicates are ignored."""
        unread = [
            message for message in messages
            if message.sender_id != user_id and not any(read.user_id == user_id for read in message.reads)
        ]
        if not unread:
            return 0

        now = utcnow()
        stmt = upsert_insert(self.db, MessageRead).values([
            {
                "message_id": message.id,
                "user_id": user_id,
                "read_at": now,
                "created_at": now,
                "updated_at": now,
            }
            for message in unread
        ]).on_conflict_do_nothing(index_elements=["message_id", "user_id"])
        await self.db.execute(stmt)
        await self.db.commit()
        return len(unread)

    async def get_read_user_ids(self, message_id: int) -> List[int]:
        result = await self.db.execute(
            select(MessageRead.user_id).where(MessageRead.message_id == message_id)
            .order_by(MessageRead.user_id)
        )
        return list(result.scalars().all())

    async def list_attachments(self, user_id: int, conversation_id: int) -> List[Message]:
        await self.conversations.ensure_participant(conversation_id, user_id)
        visible_from = await self.visibility.get_visible_from(conversation_id, user_id)

        result = await self.db.execute(
            select(Message).options(
                selectinload(Message.sender)
            ).where(
                and_(
                    Message.conversation_id == conversation_id,
                    Message.type.in_([MessageType.IMAGE, MessageType.FILE]),
                    Message.file_url.is_not(None),
                    visible_messages_clause(user_id, visible_from)
                )
            ).order_by(Message.created_at.desc(), Message.id.desc())
        )
        return list(result.scalars().all())

    async def hide_message(self, user_id: int, message_id: int) -> None:
        message = await self._get_or_404(message_id)
        await self.conversations.ensure_participant(message.conversation_id, user_id)
        if message.sender_id == user_id:
            raise InvalidOperation("Use delete for your own messages")
        await self.visibility.hide_message(message_id, user_id)

    async def delete_message(self, user_id: int, message_id: int) -> Message:
        """Soft delete. Deleting twice keeps the first timestamp."""
        message = await self._get_or_404(message_id)
        if message.sender_id != user_id:
            raise NotAuthorized("Only the sender can delete a message")

        if message.deleted_at is None:
            message.deleted_at = utcnow()
            await self.db.commit()
        return message

    async def toggle_reaction(self, user_id: int, message_id: int, emoji: Optional[str]) -> str:
        emoji = emoji.strip() if emoji else ""
        if not emoji:
            raise InvalidOperation("emoji is required")

        message = await self._get_or_404(message_id)
        await self.conversations.ensure_participant(message.conversation_id, user_id)

        removed = await self.db.execute(
            delete(MessageReaction).where(
                and_(
                    MessageReaction.message_id == message_id,
                    MessageReaction.user_id == user_id,
                    MessageReaction.emoji == emoji
                )
            ).execution_options(synchronize_session=False)
        )
        if removed.rowcount:
            await self.db.commit()
            return REACTION_REMOVED

        self.db.add(MessageReaction(message_id=message_id, user_id=user_id, emoji=emoji))
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise Conflict("Reaction changed concurrently, retry the request")
        return REACTION_ADDED

    async def get_reactions(self, message_id: int) -> List[MessageReaction]:
        result = await self.db.execute(
            select(MessageReaction).where(MessageReaction.message_id == message_id)
            .order_by(MessageReaction.id)
        )
        return list(result.scalars().all())
