"""Message service — durable storage for contract chat messages.

Learn: Two layers:
1. MessageService(db) — plain queries on one AsyncSession, used by the
   REST routes (one session per HTTP request).
2. ChatMessageStore — the narrow store a WebSocket session talks to.
   A chat session lives for minutes or hours, so it opens a fresh
   database session per operation instead of pinning one, and turns
   every database failure into a PersistenceError the session can
   report in-band.

History uses keyset pagination: (created_at, id) of the last row seen
is the cursor, so new messages arriving mid-scroll never shift a page.
"""

import uuid
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gradwork.chat.errors import PersistenceError
from gradwork.db.models import Message

logger = structlog.get_logger()


class MessageService:
    """Queries and writes on the messages table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ─── Write ───────────────────────────────────────────

    async def insert_message(
        self,
        contract_id: uuid.UUID,
        sender_id: uuid.UUID,
        content: str,
    ) -> Message:
        """Persist a new (unread) message. Id and timestamp are assigned here."""
        msg = Message(
            contract_id=contract_id,
            sender_id=sender_id,
            content=content,
            is_read=False,
        )
        self.db.add(msg)
        await self.db.commit()
        return msg

    async def mark_read(self, message_id: uuid.UUID) -> Optional[Message]:
        """Flip the read flag. Returns None if the message doesn't exist."""
        msg = await self.get_message(message_id)
        if not msg:
            return None
        msg.is_read = True
        await self.db.commit()
        return msg

    async def mark_all_read(
        self,
        contract_id: uuid.UUID,
        reader_id: uuid.UUID,
    ) -> int:
        """Mark every unread message from the *other* party as read."""
        result = await self.db.execute(
            update(Message)
            .where(
                Message.contract_id == contract_id,
                Message.sender_id != reader_id,
                Message.is_read.is_(False),
            )
            .values(is_read=True)
        )
        await self.db.commit()
        return result.rowcount or 0

    # ─── Read ────────────────────────────────────────────

    async def get_message(self, message_id: uuid.UUID) -> Optional[Message]:
        result = await self.db.execute(
            select(Message).where(Message.id == message_id)
        )
        return result.scalars().first()

    async def list_messages(
        self,
        contract_id: uuid.UUID,
        limit: int = 50,
        cursor_created_at: Optional[datetime] = None,
        cursor_id: Optional[uuid.UUID] = None,
    ) -> list[Message]:
        """One page of history, newest first.

        Learn: Pass the created_at + id of the last message you received
        to get the next (older) page. Both halves of the cursor are needed;
        with only one, the query starts from the newest message.
        """
        query = select(Message).where(Message.contract_id == contract_id)
        if cursor_created_at is not None and cursor_id is not None:
            query = query.where(
                or_(
                    Message.created_at < cursor_created_at,
                    and_(
                        Message.created_at == cursor_created_at,
                        Message.id < cursor_id,
                    ),
                )
            )
        query = query.order_by(Message.created_at.desc(), Message.id.desc()).limit(limit)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def count_unread_for_contracts(
        self,
        contract_ids: list[uuid.UUID],
        user_id: uuid.UUID,
    ) -> dict[uuid.UUID, int]:
        """contract_id → number of messages the *other* party sent that are unread."""
        if not contract_ids:
            return {}
        result = await self.db.execute(
            select(Message.contract_id, func.count(Message.id))
            .where(
                Message.contract_id.in_(contract_ids),
                Message.sender_id != user_id,
                Message.is_read.is_(False),
            )
            .group_by(Message.contract_id)
        )
        return {contract_id: count for contract_id, count in result.all()}

    async def latest_messages_for_contracts(
        self,
        contract_ids: list[uuid.UUID],
    ) -> dict[uuid.UUID, Message]:
        """contract_id → its most recent message (contracts with none are absent)."""
        if not contract_ids:
            return {}
        result = await self.db.execute(
            select(Message)
            .where(Message.contract_id.in_(contract_ids))
            .order_by(
                Message.contract_id,
                Message.created_at.desc(),
                Message.id.desc(),
            )
        )
        latest: dict[uuid.UUID, Message] = {}
        for msg in result.scalars():
            latest.setdefault(msg.contract_id, msg)
        return latest


class ChatMessageStore:
    """What a live chat session needs from storage — and nothing more."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def insert_message(
        self,
        contract_id: uuid.UUID,
        sender_id: uuid.UUID,
        content: str,
    ) -> Message:
        try:
            async with self.session_factory() as db:
                return await MessageService(db).insert_message(
                    contract_id, sender_id, content
                )
        except (SQLAlchemyError, OSError) as e:
            logger.warning(
                "chat.store.insert_failed",
                contract_id=str(contract_id),
                error=str(e),
            )
            raise PersistenceError(f"Failed to save message: {e}") from e

    async def mark_read(
        self,
        message_id: uuid.UUID,
        contract_id: uuid.UUID,
    ) -> Message:
        """Mark a message read, but only if it belongs to `contract_id`.

        A message from another contract is reported as not found, so a
        read receipt is never broadcast into the wrong room.
        """
        try:
            async with self.session_factory() as db:
                svc = MessageService(db)
                msg = await svc.get_message(message_id)
                if not msg or msg.contract_id != contract_id:
                    raise PersistenceError(f"Message {message_id} not found")
                return await svc.mark_read(message_id)
        except (SQLAlchemyError, OSError) as e:
            logger.warning(
                "chat.store.mark_read_failed",
                message_id=str(message_id),
                error=str(e),
            )
            raise PersistenceError(f"Failed to mark message as read: {e}") from e


def get_message_store() -> ChatMessageStore:
    """FastAPI dependency for WebSocket sessions."""
    from gradwork.db.engine import async_session_factory

    return ChatMessageStore(async_session_factory)
