"""Authentication.

Learn: Gradwork doesn't issue credentials itself — Supabase does. Every
request (REST or WebSocket) carries a Supabase access token, and all we
do is verify its HS256 signature and read the user id from `sub`.
- REST: `Authorization: Bearer <token>` header
- WebSocket: `?token=<token>` query param (browsers can't set headers
  on the WebSocket handshake)
"""
