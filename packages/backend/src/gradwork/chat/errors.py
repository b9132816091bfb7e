"""Chat error taxonomy.

Learn: Errors split by *when* they happen:
- Before the upgrade (authentication, authorization) they reject the
  connection attempt, either as an HTTP denial or a close code.
- After the upgrade, protocol and persistence errors become an in-band
  `error` frame and the session keeps going; transport errors end it.
"""


class ChatError(Exception):
    """Base class for chat failures."""

    status_code: int = 500
    close_code: int = 1011  # internal error


class AuthenticationError(ChatError):
    """Missing, malformed or expired credential."""

    status_code = 401
    close_code = 4401


class AuthorizationError(ChatError):
    """Contract not chat-enabled, or the user is not one of its parties."""

    status_code = 403
    close_code = 4403


class ContractNotFoundError(AuthorizationError):
    """The target contract does not exist."""

    status_code = 404
    close_code = 4404


class ProtocolError(ChatError):
    """An inbound frame did not decode into a known client message."""

    status_code = 400
    close_code = 1003


class PersistenceError(ChatError):
    """The message store failed to read or write."""


class TransportError(ChatError):
    """The socket failed underneath the session."""
