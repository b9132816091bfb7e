"""Chat wire protocol — JSON text frames with a `type` discriminator.

Learn: Each direction is a closed set of variants (a tagged union).
Pydantic's discriminated unions pick the model from the `type` field,
so decoding is one `TypeAdapter.validate_json` call and an unknown tag
is just another validation error.

Client → server:  send_message, mark_read, typing, stop_typing
Server → client:  new_message, message_read, user_typing,
                  user_stop_typing, presence, error

Example frames:
    {"type": "send_message", "content": "hi"}
    {"type": "presence", "user_id": "…", "online": true}
"""

import uuid
from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from gradwork.chat.errors import ProtocolError


class _Frame(BaseModel):
    model_config = ConfigDict(frozen=True)


# ─── Client → Server ─────────────────────────────────────


class SendMessage(_Frame):
    """Post a chat message to the contract room."""

    type: Literal["send_message"] = "send_message"
    content: str


class MarkRead(_Frame):
    """Mark one message as read."""

    type: Literal["mark_read"] = "mark_read"
    message_id: uuid.UUID


class Typing(_Frame):
    type: Literal["typing"] = "typing"


class StopTyping(_Frame):
    type: Literal["stop_typing"] = "stop_typing"


ClientMessage = Annotated[
    Union[SendMessage, MarkRead, Typing, StopTyping],
    Field(discriminator="type"),
]


# ─── Server → Client ─────────────────────────────────────


class NewMessage(_Frame):
    """A persisted message, echoed to the sender too (server id + timestamp)."""

    type: Literal["new_message"] = "new_message"
    id: uuid.UUID
    sender_id: uuid.UUID
    content: str
    created_at: datetime


class MessageRead(_Frame):
    type: Literal["message_read"] = "message_read"
    message_id: uuid.UUID


class UserTyping(_Frame):
    type: Literal["user_typing"] = "user_typing"
    user_id: uuid.UUID


class UserStopTyping(_Frame):
    type: Literal["user_stop_typing"] = "user_stop_typing"
    user_id: uuid.UUID


class Presence(_Frame):
    """A user came online (first connection) or went offline (last one)."""

    type: Literal["presence"] = "presence"
    user_id: uuid.UUID
    online: bool


class Error(_Frame):
    """In-band error, only ever sent to the connection that caused it."""

    type: Literal["error"] = "error"
    message: str


ServerMessage = Annotated[
    Union[NewMessage, MessageRead, UserTyping, UserStopTyping, Presence, Error],
    Field(discriminator="type"),
]

_client_adapter: TypeAdapter = TypeAdapter(ClientMessage)
_server_adapter: TypeAdapter = TypeAdapter(ServerMessage)


# ─── Codec ───────────────────────────────────────────────


def decode_client_message(raw: Union[str, bytes]) -> ClientMessage:
    """Parse an inbound frame.

    Raises ProtocolError for invalid JSON, an unknown `type`, or a
    missing/mistyped field. Extra keys are ignored.
    """
    try:
        return _client_adapter.validate_json(raw)
    except ValidationError as e:
        raise ProtocolError(f"Invalid message format: {_describe(e)}") from e


def encode_server_message(message: BaseModel) -> str:
    return message.model_dump_json()


def decode_server_message(raw: Union[str, bytes]) -> ServerMessage:
    """Parse an outbound frame (client side, CLI and tests)."""
    try:
        return _server_adapter.validate_json(raw)
    except ValidationError as e:
        raise ProtocolError(f"Invalid message format: {_describe(e)}") from e


def _describe(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    if location:
        return f"{location}: {first['msg']}"
    return first["msg"]
