"""JWT verification (and minting, for development).

Learn: Supabase access tokens are HS256 JWTs signed with the project's
JWT secret. The claims we rely on:
- sub: the user's UUID (also the primary key of our users table)
- exp: expiry — PyJWT rejects expired tokens for us
- aud: "authenticated" for signed-in users (checked when configured)

create_access_token mints a token of the same shape so local
development and tests don't need a Supabase project.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from gradwork.config import settings


class TokenError(Exception):
    """Raised when token creation/verification fails."""


def create_access_token(
    user_id: str,
    expires_minutes: Optional[int] = None,
    email: Optional[str] = None,
) -> str:
    """Create a Supabase-shaped access token."""
    now = datetime.now(timezone.utc)
    expires = now + timedelta(
        minutes=expires_minutes
        if expires_minutes is not None
        else settings.access_token_expire_minutes
    )
    payload = {
        "sub": str(user_id),
        "role": "authenticated",
        "exp": expires,
        "iat": now,
    }
    if settings.jwt_audience:
        payload["aud"] = settings.jwt_audience
    if email:
        payload["email"] = email
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict:
    """Verify and decode a JWT token.

    Returns the payload dict on success.
    Raises TokenError on failure.
    """
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            options={
                "require": ["exp", "sub"],
                "verify_aud": settings.jwt_audience is not None,
            },
        )
    except jwt.ExpiredSignatureError:
        raise TokenError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Invalid token: {e}")


def verify_user_id(token: str) -> uuid.UUID:
    """Verify a token and return the user id from its `sub` claim."""
    payload = verify_token(token)
    try:
        return uuid.UUID(str(payload["sub"]))
    except ValueError as e:
        raise TokenError(f"Invalid UUID in sub claim: {e}")
