"""Gradwork — freelance marketplace backend, real-time contract chat.

Users post gigs, clients send contract requests, and accepted contracts
unlock a chat channel between the two parties. This package holds the
chat core (wire protocol, room registry, per-connection session driver)
and the thin HTTP layer around it.
"""

__version__ = "0.1.0"
