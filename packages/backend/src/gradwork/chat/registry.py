"""Connection registry — which WebSockets are live in which contract room.

Learn: A room is keyed by contract_id and exists only while at least one
connection is in it. Each connection owns an unbounded asyncio.Queue;
the registry only ever *puts* into those queues (never awaits a socket),
so one slow or dead client can't stall a broadcast to the others.

Locking:
- `_lock` guards the room map itself (create / delete a room). It is held
  for a dict lookup, never across a delivery.
- each room has its own lock for membership changes, so joins and leaves
  in different contracts don't queue behind each other.
- broadcast / send_to_user / is_user_online take a snapshot of the
  membership and never suspend, so they need no lock on a single event loop.

Known limitation: the outbound queue is unbounded. A client that stops
reading grows its queue until it disconnects.
"""

import asyncio
import uuid
from typing import Optional

import structlog
from pydantic import BaseModel

from gradwork.chat.protocol import Presence

logger = structlog.get_logger()


class Connection:
    """Handle for one live chat session.

    The session driver owns the socket; the registry holds this handle
    only to deliver messages and track membership. Identity (not user_id)
    is what `leave` removes, so two tabs of the same user never clobber
    each other.
    """

    def __init__(self, contract_id: uuid.UUID, user_id: uuid.UUID):
        self.id = uuid.uuid4()
        self.contract_id = contract_id
        self.user_id = user_id
        self._queue: asyncio.Queue[Optional[BaseModel]] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        """Messages queued but not yet written to the socket."""
        return self._queue.qsize()

    def deliver(self, message: BaseModel) -> bool:
        """Enqueue without blocking. Returns False if the channel is closed."""
        if self._closed:
            return False
        self._queue.put_nowait(message)
        return True

    async def receive(self) -> Optional[BaseModel]:
        """Next queued message, or None once the channel is closed and drained."""
        if self._closed and self._queue.empty():
            return None
        return await self._queue.get()

    def close(self) -> None:
        """Stop accepting messages and wake a waiting receiver."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)

    def __repr__(self) -> str:
        return (
            f"Connection(id={self.id}, contract_id={self.contract_id}, "
            f"user_id={self.user_id})"
        )


class _Room:
    __slots__ = ("connections", "lock", "closed")

    def __init__(self):
        self.connections: list[Connection] = []
        self.lock = asyncio.Lock()
        # Set once the last connection leaves; a joiner that races the
        # deletion gets a fresh room instead.
        self.closed = False


class ConnectionRegistry:
    """Process-wide map of contract_id → live connections."""

    def __init__(self):
        self._rooms: dict[uuid.UUID, _Room] = {}
        self._lock = asyncio.Lock()

    @property
    def room_count(self) -> int:
        return len(self._rooms)

    # ─── Membership ──────────────────────────────────────

    async def join(self, contract_id: uuid.UUID, user_id: uuid.UUID) -> Connection:
        """Register a new connection and return its outbound channel.

        Learn: Presence goes out *before* the new handle is inserted, so
        the joiner never receives its own "online" announcement. Handles
        owned by the same user (other tabs) are skipped too.
        """
        connection = Connection(contract_id, user_id)
        presence = Presence(user_id=user_id, online=True)

        while True:
            room = await self._open_room(contract_id)
            async with room.lock:
                if room.closed:
                    continue
                for other in room.connections:
                    if other.user_id != user_id:
                        other.deliver(presence)
                room.connections.append(connection)
                size = len(room.connections)
            break

        logger.info(
            "chat.registry.joined",
            contract_id=str(contract_id),
            user_id=str(user_id),
            connection_id=str(connection.id),
            room_size=size,
        )
        return connection

    async def leave(self, contract_id: uuid.UUID, connection: Connection) -> bool:
        """Remove exactly this connection.

        Returns False if the handle isn't registered (already left, or never
        joined) — in that case nothing else in the room is touched.
        """
        room = self._rooms.get(contract_id)
        if room is None:
            return False

        async with room.lock:
            try:
                room.connections.remove(connection)
            except ValueError:
                return False
            connection.close()

            user_id = connection.user_id
            if not any(c.user_id == user_id for c in room.connections):
                presence = Presence(user_id=user_id, online=False)
                for other in room.connections:
                    other.deliver(presence)

            remaining = len(room.connections)
            if not remaining:
                room.closed = True

        if not remaining:
            async with self._lock:
                if self._rooms.get(contract_id) is room:
                    del self._rooms[contract_id]

        logger.info(
            "chat.registry.left",
            contract_id=str(contract_id),
            user_id=str(connection.user_id),
            connection_id=str(connection.id),
            room_size=remaining,
        )
        return True

    async def _open_room(self, contract_id: uuid.UUID) -> _Room:
        async with self._lock:
            room = self._rooms.get(contract_id)
            if room is None or room.closed:
                room = _Room()
                self._rooms[contract_id] = room
            return room

    # ─── Delivery ────────────────────────────────────────

    async def broadcast(
        self,
        contract_id: uuid.UUID,
        message: BaseModel,
        exclude_user: Optional[uuid.UUID] = None,
    ) -> int:
        """Deliver to every connection in the room except `exclude_user`'s.

        Closed channels are skipped silently; removing them is leave()'s job.
        Returns how many channels accepted the message.
        """
        delivered = 0
        for connection in self._snapshot(contract_id):
            if exclude_user is not None and connection.user_id == exclude_user:
                continue
            if connection.deliver(message):
                delivered += 1
        return delivered

    async def send_to_user(
        self,
        contract_id: uuid.UUID,
        user_id: uuid.UUID,
        message: BaseModel,
    ) -> int:
        """Deliver to every connection (0, 1 or many) of one user in the room."""
        delivered = 0
        for connection in self._snapshot(contract_id):
            if connection.user_id == user_id and connection.deliver(message):
                delivered += 1
        return delivered

    # ─── Queries ─────────────────────────────────────────

    async def is_user_online(self, contract_id: uuid.UUID, user_id: uuid.UUID) -> bool:
        return any(c.user_id == user_id for c in self._snapshot(contract_id))

    async def online_users(self, contract_id: uuid.UUID) -> set[uuid.UUID]:
        return {c.user_id for c in self._snapshot(contract_id)}

    def connection_count(self, contract_id: uuid.UUID) -> int:
        return len(self._snapshot(contract_id))

    def _snapshot(self, contract_id: uuid.UUID) -> tuple[Connection, ...]:
        room = self._rooms.get(contract_id)
        if room is None:
            return ()
        return tuple(room.connections)

    # ─── Shutdown ────────────────────────────────────────

    async def close_all(self) -> int:
        """Close every outbound channel so sessions wind down on their own.

        Each session sees its channel drained, exits its loop and runs its
        own leave(). Rooms are not touched here.
        """
        async with self._lock:
            connections = [c for room in self._rooms.values() for c in room.connections]
        for connection in connections:
            connection.close()
        return len(connections)


# Process-wide instance (shared by every WebSocket session)
registry = ConnectionRegistry()


def get_registry() -> ConnectionRegistry:
    """FastAPI dependency — the process-wide registry."""
    return registry
