import logging

import pytest
from sqlalchemy.exc import OperationalError

from messenger.config import settings
from messenger.exceptions import InvalidOperation, NotAuthorized
from messenger.models.message import MessageType
from messenger.repositories.message_repository import MessageRepository
from messenger.storage import UploadedFile

from helpers import send_text

PNG = UploadedFile(filename="cat.png", content_type="image/png", data=b"\x89PNG fake")
PDF = UploadedFile(filename="notes.pdf", content_type="application/pdf", data=b"%PDF fake")


@pytest.mark.asyncio
async def test_files_and_caption_share_a_group(db_session, users, dm, blob_store):
    alice = users["alice"]

    sent = await MessageRepository(db_session).send_message(
        dm.id, alice.id, content="  look  ", files=[PNG, PDF], blob_store=blob_store
    )

    assert [m.type for m in sent] == [MessageType.IMAGE, MessageType.FILE, MessageType.TEXT]
    assert len({m.group_id for m in sent}) == 1
    assert sent[0].group_id is not None
    assert sent[-1].content == "look"
    assert sent[0].file_name == "cat.png"
    assert sent[1].file_size == len(PDF.data)
    assert blob_store.blobs[sent[0].file_url] == PNG.data


@pytest.mark.asyncio
async def test_text_only_message_has_no_group(db_session, users, dm):
    message = await send_text(db_session, dm.id, users["alice"].id, "plain")

    assert message.group_id is None
    assert message.type == MessageType.TEXT


@pytest.mark.asyncio
async def test_send_validation(db_session, users, dm, blob_store, monkeypatch):
    alice = users["alice"]
    messages = MessageRepository(db_session)

    with pytest.raises(InvalidOperation):
        await messages.send_message(dm.id, alice.id, content="   ")
    with pytest.raises(NotAuthorized):
        await messages.send_message(dm.id, users["carol"].id, content="let me in")

    monkeypatch.setattr(settings, "MAX_FILES_PER_MESSAGE", 1)
    with pytest.raises(InvalidOperation):
        await messages.send_message(dm.id, alice.id, files=[PNG, PDF], blob_store=blob_store)

    monkeypatch.setattr(settings, "MAX_UPLOAD_BYTES", 4)
    with pytest.raises(InvalidOperation):
        await messages.send_message(dm.id, alice.id, files=[PNG], blob_store=blob_store)

    assert blob_store.blobs == {}


@pytest.mark.asyncio
async def test_attachments_newest_first_and_respect_visibility(db_session, users, dm, blob_store):
    alice, bob = users["alice"], users["bob"]
    messages = MessageRepository(db_session)

    first = (await messages.send_message(dm.id, alice.id, files=[PNG], blob_store=blob_store))[0]
    second = (await messages.send_message(dm.id, bob.id, files=[PDF], blob_store=blob_store))[0]
    third = (await messages.send_message(dm.id, alice.id, files=[PNG], blob_store=blob_store))[0]
    await send_text(db_session, dm.id, bob.id, "no file here")

    await messages.hide_message(alice.id, second.id)
    await messages.delete_message(alice.id, third.id)

    assert [m.id for m in await messages.list_attachments(bob.id, dm.id)] == [second.id, first.id]
    assert [m.id for m in await messages.list_attachments(alice.id, dm.id)] == [first.id]

    with pytest.raises(NotAuthorized):
        await messages.list_attachments(users["carol"].id, dm.id)


@pytest.mark.asyncio
async def test_failed_insert_logs_stored_uploads(db_session, users, dm, blob_store, caplog):
    alice = users["alice"]
    messages = MessageRepository(db_session)

    async def broken_restore(conversation_id, timestamp):
        raise OperationalError("UPDATE conversation_hides", {}, Exception("disk I/O error"))

    messages.visibility.restore_on_new_message = broken_restore

    with caplog.at_level(logging.ERROR, logger="messenger.repositories.message_repository"):
        with pytest.raises(OperationalError):
            await messages.send_message(dm.id, alice.id, content="album", files=[PNG], blob_store=blob_store)

    [url] = blob_store.blobs
    assert url in caplog.text
    assert "orphaned uploads" in caplog.text
    assert await MessageRepository(db_session).list_attachments(alice.id, dm.id) == []
