"""
Test configuration for the messenger.

Every test gets its own in-memory SQLite database so hide, read and
reaction rows never leak between tests.
"""

import os

# must be set before messenger.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("REVOCATION_BACKEND", "memory")

from typing import AsyncGenerator, Dict

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from messenger.database import create_tables, get_db
from messenger.models.user import User
from messenger.repositories.conversation_repository import ConversationRepository
from messenger.revocation import InMemoryRevocationStore, get_revocation_store
from messenger.storage import BlobStore, get_blob_store


class MemoryBlobStore(BlobStore):
    """Keeps uploads in a dict instead of writing files."""

    def __init__(self):
        self.blobs: Dict[str, bytes] = {}

    async def store(self, data: bytes, folder: str, filename: str = None) -> str:
        url = f"memory://{folder}/{len(self.blobs) + 1}-{filename or 'blob'}"
        self.blobs[url] = data
        return url


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def users(db_session) -> Dict[str, User]:
    """alice, bob and carol; passwords are never checked at this level."""
    created = {}
    for name in ("alice", "bob", "carol"):
        user = User(full_name=name.capitalize(), email=f"{name}@example.com", hashed_password="unused")
        db_session.add(user)
        created[name] = user
    await db_session.commit()
    return created


@pytest_asyncio.fixture
async def dm(db_session, users):
    """Direct conversation between alice and bob."""
    conversation, _ = await ConversationRepository(db_session).open_direct_message(
        users["alice"].id, users["bob"].id
    )
    return conversation


@pytest_asyncio.fixture
async def blob_store() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest_asyncio.fixture
async def client(session_factory, blob_store) -> AsyncGenerator[AsyncClient, None]:
    from messenger.main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    revocation = InMemoryRevocationStore()
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    app.dependency_overrides[get_revocation_store] = lambda: revocation

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
