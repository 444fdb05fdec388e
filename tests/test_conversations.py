import pytest
from sqlalchemy import update

from messenger.exceptions import InvalidOperation, NotAuthorized, NotFound
from messenger.models.conversation import Conversation
from messenger.repositories.conversation_repository import ConversationRepository

from helpers import send_text


@pytest.mark.asyncio
async def test_open_dm_creates_once(db_session, users):
    alice, bob = users["alice"], users["bob"]
    conversations = ConversationRepository(db_session)

    created, was_created = await conversations.open_direct_message(alice.id, bob.id)
    again, was_created_again = await conversations.open_direct_message(bob.id, alice.id)

    assert was_created is True
    assert was_created_again is False
    assert again.id == created.id
    assert sorted(p.user_id for p in created.participants) == sorted([alice.id, bob.id])
    assert created.is_group is False


@pytest.mark.asyncio
async def test_open_dm_validation(db_session, users):
    alice = users["alice"]
    conversations = ConversationRepository(db_session)

    with pytest.raises(InvalidOperation):
        await conversations.open_direct_message(alice.id, None)
    with pytest.raises(InvalidOperation):
        await conversations.open_direct_message(alice.id, alice.id)
    with pytest.raises(NotFound):
        await conversations.open_direct_message(alice.id, 424242)


@pytest.mark.asyncio
async def test_create_group_deduplicates_members(db_session, users):
    alice, bob, carol = users["alice"], users["bob"], users["carol"]

    group = await ConversationRepository(db_session).create_group(
        alice.id, "  Weekend  ", [bob.id, carol.id, bob.id, alice.id]
    )

    assert group.is_group is True
    assert group.name == "Weekend"
    assert group.direct_key is None
    assert sorted(p.user_id for p in group.participants) == sorted([alice.id, bob.id, carol.id])


@pytest.mark.asyncio
async def test_create_group_validation(db_session, users):
    alice, bob = users["alice"], users["bob"]
    conversations = ConversationRepository(db_session)

    with pytest.raises(InvalidOperation):
        await conversations.create_group(alice.id, "", [bob.id])
    with pytest.raises(InvalidOperation):
        await conversations.create_group(alice.id, "Empty", [])
    with pytest.raises(NotFound):
        await conversations.create_group(alice.id, "Ghosts", [bob.id, 424242])


@pytest.mark.asyncio
async def test_list_orders_by_latest_activity(db_session, users, dm):
    alice, bob, carol = users["alice"], users["bob"], users["carol"]
    conversations = ConversationRepository(db_session)
    with_carol, _ = await conversations.open_direct_message(alice.id, carol.id)

    await send_text(db_session, with_carol.id, carol.id, "first")
    await send_text(db_session, dm.id, bob.id, "second")

    assert [o.conversation.id for o in await conversations.list_conversations(alice.id)] == [dm.id, with_carol.id]

    await send_text(db_session, with_carol.id, alice.id, "third")

    assert [o.conversation.id for o in await conversations.list_conversations(alice.id)] == [with_carol.id, dm.id]


@pytest.mark.asyncio
async def test_list_breaks_ties_by_conversation_id(db_session, users, dm):
    alice, carol = users["alice"], users["carol"]
    conversations = ConversationRepository(db_session)
    with_carol, _ = await conversations.open_direct_message(alice.id, carol.id)

    await db_session.execute(
        update(Conversation).values(created_at=dm.created_at).execution_options(synchronize_session=False)
    )
    await db_session.commit()

    overviews = await conversations.list_conversations(alice.id)
    assert [o.conversation.id for o in overviews] == [with_carol.id, dm.id]


@pytest.mark.asyncio
async def test_list_only_contains_own_conversations(db_session, users, dm):
    carol = users["carol"]
    assert await ConversationRepository(db_session).list_conversations(carol.id) == []


@pytest.mark.asyncio
async def test_empty_conversation_has_no_preview(db_session, users, dm):
    overview = (await ConversationRepository(db_session).list_conversations(users["alice"].id))[0]

    assert overview.last_message is None
    assert overview.unread_count == 0


@pytest.mark.asyncio
async def test_get_for_participant(db_session, users, dm):
    conversations = ConversationRepository(db_session)

    assert (await conversations.get_for_participant(dm.id, users["bob"].id)).id == dm.id
    with pytest.raises(NotAuthorized):
        await conversations.get_for_participant(dm.id, users["carol"].id)
    with pytest.raises(NotFound):
        await conversations.get_for_participant(424242, users["alice"].id)


@pytest.mark.asyncio
async def test_hide_requires_participation(db_session, users, dm):
    with pytest.raises(NotAuthorized):
        await ConversationRepository(db_session).hide(dm.id, users["carol"].id)


@pytest.mark.asyncio
async def test_theme_is_shared_and_partially_updated(db_session, users, dm):
    alice, bob = users["alice"], users["bob"]
    conversations = ConversationRepository(db_session)

    assert await conversations.get_theme(dm.id, alice.id) is None

    await conversations.set_theme(dm.id, alice.id, {"bg_color": "#101010", "text_color": "#fafafa"})
    theme = await conversations.set_theme(dm.id, bob.id, {"text_color": "#00ff00"})

    assert theme.bg_color == "#101010"
    assert theme.text_color == "#00ff00"
    assert (await conversations.get_theme(dm.id, alice.id)).id == theme.id

    with pytest.raises(NotAuthorized):
        await conversations.set_theme(dm.id, users["carol"].id, {"bg_color": "#000000"})
