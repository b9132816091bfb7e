"""Chat REST routes — history, read receipts, conversation list, presence.

Learn: The WebSocket is the live path; these routes are the catch-up
path. A client opening a chat first loads history here, then connects
to the socket for anything newer. Authorization is the same check the
socket uses (ContractService.authorize_chat), translated to HTTP errors.
"""

import uuid
from datetime import datetime
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from gradwork.auth.dependencies import CurrentIdentity, get_current_user
from gradwork.cache import cache_delete, cache_get, cache_set, conversations_key
from gradwork.chat.errors import ChatError
from gradwork.chat.protocol import MessageRead
from gradwork.chat.registry import ConnectionRegistry, get_registry
from gradwork.config import settings
from gradwork.db.engine import get_db
from gradwork.db.models import Contract
from gradwork.schemas.chat import (
    ConversationSummary,
    MarkAllReadResult,
    MessageOut,
    PartyPresence,
    PresenceRead,
)
from gradwork.services.contract_service import ContractService, parties
from gradwork.services.message_service import MessageService

logger = structlog.get_logger()
router = APIRouter(prefix="/chat")


def _contract_svc(db: AsyncSession = Depends(get_db)) -> ContractService:
    return ContractService(db)


def _msg_svc(db: AsyncSession = Depends(get_db)) -> MessageService:
    return MessageService(db)


async def _authorize(
    svc: ContractService,
    contract_id: uuid.UUID,
    user_id: uuid.UUID,
) -> Contract:
    try:
        return await svc.authorize_chat(contract_id, user_id)
    except ChatError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


# ═══════════════════════════════════════════════════════════
# History
# ═══════════════════════════════════════════════════════════


@router.get("/{contract_id}/messages", response_model=list[MessageOut])
async def get_messages(
    contract_id: uuid.UUID,
    limit: int = Query(settings.message_page_limit, ge=1),
    cursor_created_at: Optional[datetime] = Query(None),
    cursor_id: Optional[uuid.UUID] = Query(None),
    user: CurrentIdentity = Depends(get_current_user),
    contracts: ContractService = Depends(_contract_svc),
    messages: MessageService = Depends(_msg_svc),
):
    """A page of history, newest first. Only the two parties may read it."""
    await _authorize(contracts, contract_id, user.user_id)
    return await messages.list_messages(
        contract_id,
        limit=min(limit, settings.message_page_max),
        cursor_created_at=cursor_created_at,
        cursor_id=cursor_id,
    )


# ═══════════════════════════════════════════════════════════
# Read receipts
# ═══════════════════════════════════════════════════════════


@router.put("/messages/{message_id}/read", response_model=MessageOut)
async def mark_message_read(
    message_id: uuid.UUID,
    user: CurrentIdentity = Depends(get_current_user),
    contracts: ContractService = Depends(_contract_svc),
    messages: MessageService = Depends(_msg_svc),
    registry: ConnectionRegistry = Depends(get_registry),
):
    """Mark one message read. Only the recipient may do this.

    Learn: If the sender has the chat open, their live connections get a
    message_read frame right away — the REST path and the socket path
    produce the same receipt.
    """
    msg = await messages.get_message(message_id)
    if not msg:
        raise HTTPException(status_code=404, detail=f"Message {message_id} not found")

    await _authorize(contracts, msg.contract_id, user.user_id)

    if msg.sender_id == user.user_id:
        raise HTTPException(
            status_code=403, detail="You cannot mark your own message as read"
        )

    msg = await messages.mark_read(message_id)
    await cache_delete(conversations_key(user.user_id))
    await registry.send_to_user(
        msg.contract_id, msg.sender_id, MessageRead(message_id=msg.id)
    )
    return msg


@router.put("/{contract_id}/read", response_model=MarkAllReadResult)
async def mark_conversation_read(
    contract_id: uuid.UUID,
    user: CurrentIdentity = Depends(get_current_user),
    contracts: ContractService = Depends(_contract_svc),
    messages: MessageService = Depends(_msg_svc),
):
    """Mark everything the other party sent in this contract as read."""
    await _authorize(contracts, contract_id, user.user_id)
    marked = await messages.mark_all_read(contract_id, user.user_id)
    await cache_delete(conversations_key(user.user_id))
    return MarkAllReadResult(contract_id=contract_id, marked=marked)


# ═══════════════════════════════════════════════════════════
# Conversations
# ═══════════════════════════════════════════════════════════


@router.get("/conversations", response_model=list[ConversationSummary])
async def get_conversations(
    user: CurrentIdentity = Depends(get_current_user),
    contracts: ContractService = Depends(_contract_svc),
    messages: MessageService = Depends(_msg_svc),
):
    """Every accepted contract the user can chat in, most recent activity first."""
    key = conversations_key(user.user_id)
    cached = await cache_get(key)
    if cached is not None:
        return cached

    chats = await contracts.list_chat_contracts(user.user_id)
    contract_ids = [chat.contract.id for chat in chats]
    latest = await messages.latest_messages_for_contracts(contract_ids)
    unread = await messages.count_unread_for_contracts(contract_ids, user.user_id)

    summaries = []
    for chat in chats:
        last = latest.get(chat.contract.id)
        summaries.append(
            ConversationSummary(
                contract_id=chat.contract.id,
                other_user_id=chat.other_user_id,
                other_user_name=chat.other_user.display_name if chat.other_user else None,
                last_message=last.content if last else None,
                last_message_at=last.created_at if last else None,
                unread_count=unread.get(chat.contract.id, 0),
            )
        )

    summaries.sort(
        key=lambda s: s.last_message_at.timestamp() if s.last_message_at else 0.0,
        reverse=True,
    )

    await cache_set(
        key,
        [s.model_dump(mode="json") for s in summaries],
        ttl_seconds=settings.conversations_cache_ttl,
    )
    return summaries


# ═══════════════════════════════════════════════════════════
# Presence
# ═══════════════════════════════════════════════════════════


@router.get("/{contract_id}/presence", response_model=PresenceRead)
async def get_presence(
    contract_id: uuid.UUID,
    user: CurrentIdentity = Depends(get_current_user),
    contracts: ContractService = Depends(_contract_svc),
    registry: ConnectionRegistry = Depends(get_registry),
):
    """Which of the two parties has the chat open right now."""
    contract = await _authorize(contracts, contract_id, user.user_id)
    return PresenceRead(
        contract_id=contract_id,
        parties=[
            PartyPresence(
                user_id=party_id,
                online=await registry.is_user_online(contract_id, party_id),
            )
            for party_id in parties(contract)
        ],
        connections=registry.connection_count(contract_id),
    )
