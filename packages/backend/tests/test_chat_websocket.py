"""WebSocket endpoint tests through the real app and Starlette's TestClient.

Learn: TestClient runs each socket on its own thread and event loop, so
these tests stick to one connection at a time: the handshake rejections
(HTTP denial responses) and a single client talking to itself.
Multi-client behaviour is covered in test_chat_session.py.
"""

import uuid

import pytest
from starlette.testclient import TestClient, WebSocketDenialResponse

from chat_fakes import FakeAuthorizer, FakeStore
from gradwork.auth.jwt import create_access_token
from gradwork.chat.protocol import decode_server_message
from gradwork.chat.registry import ConnectionRegistry, get_registry
from gradwork.main import app
from gradwork.services.contract_service import get_chat_authorizer
from gradwork.services.message_service import get_message_store


@pytest.fixture
def ws_env():
    registry = ConnectionRegistry()
    store = FakeStore()
    authorizer = FakeAuthorizer()
    client_id, freelancer_id = uuid.uuid4(), uuid.uuid4()
    contract_id = authorizer.add(client_id, freelancer_id)

    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_message_store] = lambda: store
    app.dependency_overrides[get_chat_authorizer] = lambda: authorizer

    # No `with`: lifespan (Redis, engine) isn't needed for these tests.
    yield {
        "http": TestClient(app),
        "registry": registry,
        "store": store,
        "contract_id": contract_id,
        "client_id": client_id,
    }

    app.dependency_overrides.clear()


def _url(contract_id, token=None) -> str:
    url = f"/api/v1/chat/ws/{contract_id}"
    return f"{url}?token={token}" if token is not None else url


def test_send_message_echoes_to_sender(ws_env):
    token = create_access_token(str(ws_env["client_id"]))
    with ws_env["http"].websocket_connect(_url(ws_env["contract_id"], token)) as ws:
        ws.send_json({"type": "send_message", "content": "hello"})
        frame = decode_server_message(ws.receive_text())

        assert frame.type == "new_message"
        assert frame.content == "hello"
        assert frame.sender_id == ws_env["client_id"]
        stored = ws_env["store"].messages[frame.id]
        assert frame.created_at == stored.created_at
        # The echo came back through the room, so the session has joined.
        assert ws_env["registry"].connection_count(ws_env["contract_id"]) == 1


def test_malformed_frame_gets_error_frame(ws_env):
    token = create_access_token(str(ws_env["client_id"]))
    with ws_env["http"].websocket_connect(_url(ws_env["contract_id"], token)) as ws:
        ws.send_text("definitely not json")
        frame = ws.receive_json()
        assert frame["type"] == "error"
        assert frame["message"].startswith("Invalid message format")

        ws.send_json({"type": "send_message", "content": "  "})
        assert ws.receive_json() == {
            "type": "error",
            "message": "Message content cannot be empty",
        }


def test_missing_token_denied_401(ws_env):
    with pytest.raises(WebSocketDenialResponse) as exc:
        with ws_env["http"].websocket_connect(_url(ws_env["contract_id"])):
            pass
    assert exc.value.status_code == 401
    assert exc.value.json() == {"detail": "Authentication required"}


def test_expired_token_denied_401(ws_env):
    token = create_access_token(str(ws_env["client_id"]), expires_minutes=-1)
    with pytest.raises(WebSocketDenialResponse) as exc:
        with ws_env["http"].websocket_connect(_url(ws_env["contract_id"], token)):
            pass
    assert exc.value.status_code == 401
    assert exc.value.json() == {"detail": "Token has expired"}
    assert ws_env["registry"].room_count == 0


def test_non_party_denied_403(ws_env):
    token = create_access_token(str(uuid.uuid4()))
    with pytest.raises(WebSocketDenialResponse) as exc:
        with ws_env["http"].websocket_connect(_url(ws_env["contract_id"], token)):
            pass
    assert exc.value.status_code == 403
    assert ws_env["registry"].room_count == 0


def test_unknown_contract_denied_404(ws_env):
    token = create_access_token(str(ws_env["client_id"]))
    with pytest.raises(WebSocketDenialResponse) as exc:
        with ws_env["http"].websocket_connect(_url(uuid.uuid4(), token)):
            pass
    assert exc.value.status_code == 404
