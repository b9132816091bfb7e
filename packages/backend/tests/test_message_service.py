"""Message storage tests — MessageService queries and the chat store."""

import uuid

import pytest
from sqlalchemy.exc import OperationalError

from chat_fakes import unreachable_db
from gradwork.chat.errors import PersistenceError
from gradwork.services.message_service import ChatMessageStore, MessageService


@pytest.mark.asyncio
async def test_insert_assigns_id_and_timestamp(db_session, chat):
    svc = MessageService(db_session)
    msg = await svc.insert_message(chat.contract.id, chat.client.id, "hello")

    assert msg.id is not None
    assert msg.created_at is not None
    assert msg.is_read is False
    assert (await svc.get_message(msg.id)).content == "hello"


@pytest.mark.asyncio
async def test_mark_read_missing_returns_none(db_session):
    assert await MessageService(db_session).mark_read(uuid.uuid4()) is None


@pytest.mark.asyncio
async def test_list_messages_breaks_timestamp_ties_by_id(db_session, chat):
    svc = MessageService(db_session)
    msgs = [
        await svc.insert_message(chat.contract.id, chat.client.id, f"m{i}")
        for i in range(4)
    ]
    same_instant = msgs[0].created_at
    for m in msgs:
        m.created_at = same_instant
    await db_session.commit()

    expected = sorted(msgs, key=lambda m: m.id, reverse=True)
    page1 = await svc.list_messages(chat.contract.id, limit=2)
    page2 = await svc.list_messages(
        chat.contract.id,
        limit=2,
        cursor_created_at=page1[-1].created_at,
        cursor_id=page1[-1].id,
    )
    assert [m.id for m in page1 + page2] == [m.id for m in expected]


@pytest.mark.asyncio
async def test_unread_counts_and_latest(db_session, chat, seed):
    svc = MessageService(db_session)
    other = await seed(client_user=chat.client)

    await svc.insert_message(chat.contract.id, chat.freelancer.id, "a")
    await svc.insert_message(chat.contract.id, chat.client.id, "b")
    last = await svc.insert_message(chat.contract.id, chat.freelancer.id, "c")

    ids = [chat.contract.id, other.contract.id]
    assert await svc.count_unread_for_contracts(ids, chat.client.id) == {
        chat.contract.id: 2
    }
    latest = await svc.latest_messages_for_contracts(ids)
    assert latest[chat.contract.id].id == last.id
    assert other.contract.id not in latest
    assert await svc.count_unread_for_contracts([], chat.client.id) == {}


# ═══════════════════════════════════════════════════════════
# ChatMessageStore
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_store_insert_and_mark_read(session_factory, chat):
    store = ChatMessageStore(session_factory)
    msg = await store.insert_message(chat.contract.id, chat.client.id, "hi")

    marked = await store.mark_read(msg.id, chat.contract.id)
    assert marked.id == msg.id
    assert marked.is_read is True


@pytest.mark.asyncio
async def test_store_mark_read_wrong_contract(session_factory, chat, seed):
    store = ChatMessageStore(session_factory)
    other = await seed()
    msg = await store.insert_message(other.contract.id, other.client.id, "elsewhere")

    with pytest.raises(PersistenceError, match="not found"):
        await store.mark_read(msg.id, chat.contract.id)


@pytest.mark.asyncio
async def test_store_wraps_database_errors(session_factory, db_engine, chat):
    store = ChatMessageStore(session_factory)
    async with db_engine.begin() as conn:
        await conn.exec_driver_sql("DROP TABLE messages")

    with pytest.raises(PersistenceError, match="Failed to save message") as exc:
        await store.insert_message(chat.contract.id, chat.client.id, "lost")
    assert isinstance(exc.value.__cause__, OperationalError)


@pytest.mark.asyncio
async def test_store_wraps_connection_refused():
    store = ChatMessageStore(unreachable_db)

    with pytest.raises(PersistenceError, match="Failed to save message") as exc:
        await store.insert_message(uuid.uuid4(), uuid.uuid4(), "hello")
    assert isinstance(exc.value.__cause__, ConnectionRefusedError)

    with pytest.raises(PersistenceError, match="Failed to mark message as read"):
        await store.mark_read(uuid.uuid4(), uuid.uuid4())
