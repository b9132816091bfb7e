"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: REST auth is applied per handler (get_current_user) because the
chat routes need the caller's user id anyway. The WebSocket router is
included without HTTP auth — browsers can't send headers on the
handshake, so ChatSession checks the ?token= itself.
"""

from fastapi import APIRouter

from gradwork.api.chat import router as chat_router
from gradwork.api.health import router as health_router
from gradwork.chat.websocket import router as chat_ws_router

api_router = APIRouter(prefix="/api/v1")

# Open routes (no auth)
api_router.include_router(health_router, tags=["health"])

# Chat: REST requires a Bearer token, the socket checks ?token=
api_router.include_router(chat_router, tags=["chat"])
api_router.include_router(chat_ws_router)
