"""
Two sessions working at the same time.

These use a file-backed SQLite database so each session holds its own
connection; the in-memory engine shares one connection between sessions.
"""

import asyncio

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from messenger.database import create_tables
from messenger.exceptions import Conflict
from messenger.models.conversation import Conversation, Participant
from messenger.models.message_read import MessageRead
from messenger.models.user import User
from messenger.repositories.conversation_repository import ConversationRepository
from messenger.repositories.message_repository import MessageRepository
from messenger.repositories.visibility_repository import VisibilityRepository, VisibilityState

from helpers import send_many, send_text


@pytest_asyncio.fixture
async def shared_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'messenger.db'}")
    await create_tables(engine)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def people(shared_factory):
    async with shared_factory() as session:
        alice = User(full_name="Alice", email="alice@example.com", hashed_password="unused")
        bob = User(full_name="Bob", email="bob@example.com", hashed_password="unused")
        session.add_all([alice, bob])
        await session.commit()
        return alice.id, bob.id


@pytest_asyncio.fixture
async def direct(shared_factory, people):
    async with shared_factory() as session:
        conversation, _ = await ConversationRepository(session).open_direct_message(*people)
        return conversation.id


@pytest.mark.asyncio
async def test_parallel_page_reads_leave_one_receipt_per_message(shared_factory, people, direct):
    alice_id, bob_id = people
    async with shared_factory() as session:
        sent = await send_many(session, direct, [alice_id], 5)

    async with shared_factory() as first, shared_factory() as second:
        pages = await asyncio.gather(
            MessageRepository(first).list_messages(bob_id, direct),
            MessageRepository(second).list_messages(bob_id, direct),
        )

    assert [[m.id for m in page.messages] for page in pages] == [[m.id for m in sent]] * 2

    async with shared_factory() as session:
        result = await session.execute(
            select(MessageRead.message_id, func.count(MessageRead.id))
            .where(MessageRead.user_id == bob_id)
            .group_by(MessageRead.message_id)
        )
        receipts = dict(result.all())

    assert receipts == {m.id: 1 for m in sent}


@pytest.mark.asyncio
async def test_parallel_sends_into_hidden_conversation_set_window_once(shared_factory, people, direct):
    alice_id, bob_id = people
    async with shared_factory() as session:
        await send_text(session, direct, bob_id, "before")
        await ConversationRepository(session).hide(direct, alice_id)

    async with shared_factory() as first, shared_factory() as second:
        one, two = await asyncio.gather(
            send_text(first, direct, bob_id, "one"),
            send_text(second, direct, bob_id, "two"),
        )

    async with shared_factory() as session:
        visibility = VisibilityRepository(session)
        window = await visibility.get_visible_from(direct, alice_id)

        assert await visibility.get_state(direct, alice_id) == VisibilityState.VISIBLE_WINDOWED
        assert window in (one.created_at, two.created_at)

        await send_text(session, direct, bob_id, "three")
        assert await visibility.get_visible_from(direct, alice_id) == window


@pytest.mark.asyncio
async def test_racing_dm_creation_yields_one_conversation_and_a_conflict(shared_factory, people):
    alice_id, bob_id = people
    second_looked, first_done = asyncio.Event(), asyncio.Event()

    class FirstOpener(ConversationRepository):
        async def get_direct_conversation(self, user_id1, user_id2):
            found = await super().get_direct_conversation(user_id1, user_id2)
            await second_looked.wait()
            return found

    class SecondOpener(ConversationRepository):
        async def get_direct_conversation(self, user_id1, user_id2):
            found = await super().get_direct_conversation(user_id1, user_id2)
            second_looked.set()
            # both lookups missed; insert only after the other side committed
            await first_done.wait()
            return found

    async def open_first(session):
        try:
            return await FirstOpener(session).open_direct_message(alice_id, bob_id)
        finally:
            first_done.set()

    async with shared_factory() as first, shared_factory() as second:
        outcomes = await asyncio.gather(
            open_first(first),
            SecondOpener(second).open_direct_message(bob_id, alice_id),
            return_exceptions=True,
        )

    created, lost = outcomes
    assert created[1] is True
    assert isinstance(lost, Conflict)

    async with shared_factory() as session:
        conversations = (await session.execute(select(Conversation.id))).scalars().all()
        members = (await session.execute(
            select(Participant.user_id).where(Participant.conversation_id == created[0].id)
        )).scalars().all()

    assert conversations == [created[0].id]
    assert sorted(members) == sorted([alice_id, bob_id])
