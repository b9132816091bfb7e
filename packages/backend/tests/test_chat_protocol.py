"""Wire protocol tests — decoding client frames, encoding server frames."""

import json
import uuid
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from gradwork.chat.errors import ProtocolError
from gradwork.chat.protocol import (
    Error,
    MarkRead,
    NewMessage,
    Presence,
    SendMessage,
    StopTyping,
    Typing,
    decode_client_message,
    decode_server_message,
    encode_server_message,
)


def test_decode_send_message():
    msg = decode_client_message('{"type": "send_message", "content": "hello"}')
    assert msg == SendMessage(content="hello")


def test_decode_mark_read():
    message_id = uuid.uuid4()
    msg = decode_client_message(
        json.dumps({"type": "mark_read", "message_id": str(message_id)})
    )
    assert isinstance(msg, MarkRead)
    assert msg.message_id == message_id


def test_decode_typing_variants():
    assert isinstance(decode_client_message('{"type": "typing"}'), Typing)
    assert isinstance(decode_client_message('{"type": "stop_typing"}'), StopTyping)


def test_decode_ignores_extra_keys():
    msg = decode_client_message(
        '{"type": "send_message", "content": "hi", "client_ts": 123}'
    )
    assert msg == SendMessage(content="hi")


def test_decode_accepts_bytes():
    assert isinstance(decode_client_message(b'{"type": "typing"}'), Typing)


@pytest.mark.parametrize(
    "raw",
    [
        "{not json",
        '{"type": "dance"}',
        '{"content": "no type"}',
        '{"type": "send_message"}',
        '{"type": "send_message", "content": 42}',
        '{"type": "mark_read", "message_id": "not-a-uuid"}',
        '["send_message"]',
    ],
)
def test_decode_rejects_malformed(raw):
    with pytest.raises(ProtocolError) as exc:
        decode_client_message(raw)
    assert str(exc.value).startswith("Invalid message format")


def test_server_only_frame_is_not_a_client_message():
    with pytest.raises(ProtocolError):
        decode_client_message('{"type": "presence", "user_id": "x", "online": true}')


def test_protocol_error_is_bad_request():
    assert ProtocolError.status_code == 400


def test_encode_new_message_shape():
    message_id, sender_id = uuid.uuid4(), uuid.uuid4()
    created_at = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
    raw = encode_server_message(
        NewMessage(id=message_id, sender_id=sender_id, content="hi", created_at=created_at)
    )

    data = json.loads(raw)
    assert data == {
        "type": "new_message",
        "id": str(message_id),
        "sender_id": str(sender_id),
        "content": "hi",
        "created_at": "2024-05-01T12:30:00Z",
    }
    assert decode_server_message(raw).created_at == created_at


def test_encode_presence_and_error():
    user_id = uuid.uuid4()
    assert json.loads(encode_server_message(Presence(user_id=user_id, online=False))) == {
        "type": "presence",
        "user_id": str(user_id),
        "online": False,
    }
    assert json.loads(encode_server_message(Error(message="nope"))) == {
        "type": "error",
        "message": "nope",
    }


def test_frames_are_immutable():
    msg = SendMessage(content="hi")
    with pytest.raises(ValidationError):
        msg.content = "changed"
