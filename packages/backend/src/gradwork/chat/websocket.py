"""WebSocket endpoint — live chat for one contract.

Learn: Clients connect to /api/v1/chat/ws/{contract_id}?token=JWT.
The route only wires collaborators together; everything interesting
(auth, room membership, the read/write loop, cleanup) lives in
ChatSession. Each collaborator is a FastAPI dependency so tests can
swap in fakes with app.dependency_overrides.
"""

import uuid

from fastapi import APIRouter, Depends, WebSocket

from gradwork.chat.registry import ConnectionRegistry, get_registry
from gradwork.chat.session import ChatSession
from gradwork.services.contract_service import (
    ChatContractAuthorizer,
    get_chat_authorizer,
)
from gradwork.services.message_service import ChatMessageStore, get_message_store

router = APIRouter()


@router.websocket("/chat/ws/{contract_id}")
async def contract_chat(
    websocket: WebSocket,
    contract_id: uuid.UUID,
    registry: ConnectionRegistry = Depends(get_registry),
    store: ChatMessageStore = Depends(get_message_store),
    authorizer: ChatContractAuthorizer = Depends(get_chat_authorizer),
):
    """Real-time chat between the two parties of an accepted contract."""
    session = ChatSession(
        websocket,
        contract_id=contract_id,
        registry=registry,
        store=store,
        authorizer=authorizer,
    )
    await session.run()
