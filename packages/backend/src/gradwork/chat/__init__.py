"""Real-time contract chat.

Learn: Three layers, leaves first:
1. protocol — the JSON frames a client and the server exchange
2. registry — which connections are live in which contract room
3. session  — one driver per WebSocket: auth, join, pump, leave

The registry is process-local. Messages are persisted before they are
fanned out, so the REST history endpoint is always the source of truth
and the live stream is best-effort on top of it.
"""
