"""Pydantic schemas for the chat REST routes.

Learn: The WebSocket frames live in gradwork.chat.protocol; these are
the shapes of the plain HTTP responses (history, conversation list,
presence).
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class MessageOut(BaseModel):
    id: uuid.UUID
    contract_id: uuid.UUID
    sender_id: uuid.UUID
    content: str
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class ConversationSummary(BaseModel):
    """One row of the conversation list."""
    contract_id: uuid.UUID
    other_user_id: uuid.UUID
    other_user_name: Optional[str] = None
    last_message: Optional[str] = None
    last_message_at: Optional[datetime] = None
    unread_count: int = 0


class MarkAllReadResult(BaseModel):
    contract_id: uuid.UUID
    marked: int


class PartyPresence(BaseModel):
    user_id: uuid.UUID
    online: bool


class PresenceRead(BaseModel):
    contract_id: uuid.UUID
    parties: list[PartyPresence]
    connections: int
