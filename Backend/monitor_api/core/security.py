"""
Security utilities for password hashing, token signing and secret masking.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import bcrypt
import jwt

from monitor_api.core.config import settings

JWT_ALGORITHM = "HS256"
MASK_PREFIX = "****"


class PasswordPolicy:
    """Password hashing helpers."""

    @staticmethod
    def hash(password: str) -> str:
        """Hash a password using bcrypt. Bcrypt has a 72 byte limit, so truncate if needed."""
        password_bytes = password.encode("utf-8")
        if len(password_bytes) > 72:
            password_bytes = password_bytes[:72]
        salt = bcrypt.gensalt(rounds=12)
        return bcrypt.hashpw(password_bytes, salt).decode("utf-8")

    @staticmethod
    def verify(plain_password: str, hashed_password: str) -> bool:
        """Verify a password against a hash."""
        plain_bytes = plain_password.encode("utf-8")
        if len(plain_bytes) > 72:
            plain_bytes = plain_bytes[:72]
        try:
            return bcrypt.checkpw(plain_bytes, hashed_password.encode("utf-8"))
        except ValueError:
            # Stored value is not a bcrypt hash
            return False


# ============================================================================
# Tokens
# ============================================================================

class InvalidTokenError(Exception):
    """Raised when a token cannot be decoded, verified, or is expired."""


@dataclass(frozen=True)
class TokenClaims:
    """Identity carried by an access token."""

    user_id: int
    username: str


def coerce_user_id(value: Any) -> int:
    """
    Decode a ``user_id`` claim written by any JWT library.

    Accepts ints, integral floats (``7.0``) and numeric strings (``"7"``).
    Negative, fractional, boolean and other values are rejected.
    """
    if isinstance(value, bool):
        raise InvalidTokenError("user_id claim has invalid type")
    if isinstance(value, int):
        user_id = value
    elif isinstance(value, float) and value.is_integer():
        user_id = int(value)
    elif isinstance(value, str) and value.strip().isdigit():
        user_id = int(value.strip())
    else:
        raise InvalidTokenError("user_id claim has invalid type")

    if user_id < 0:
        raise InvalidTokenError("user_id claim is negative")
    return user_id


class TokenManager:
    """HS256 access tokens with ``{user_id, username, exp}`` claims."""

    def __init__(self, secret: Optional[str] = None, expire_hours: Optional[int] = None):
        self.secret = secret if secret is not None else settings.jwt.secret
        self.expire_hours = expire_hours if expire_hours is not None else settings.jwt.expire_hour

    def create(self, user_id: int, username: str) -> str:
        """Sign a token for the given identity."""
        expires_at = datetime.now(timezone.utc) + timedelta(hours=self.expire_hours)
        payload = {
            "user_id": user_id,
            "username": username,
            "exp": expires_at,
        }
        return jwt.encode(payload, self.secret, algorithm=JWT_ALGORITHM)

    def parse(self, token: str) -> TokenClaims:
        """
        Verify a token and extract its identity.

        Raises:
            InvalidTokenError: On bad signature, expiry or malformed claims
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[JWT_ALGORITHM],
                options={"require": ["exp"]},
            )
        except jwt.PyJWTError as e:
            raise InvalidTokenError(str(e)) from e

        if "user_id" not in payload:
            raise InvalidTokenError("missing user_id claim")
        user_id = coerce_user_id(payload["user_id"])

        username = payload.get("username")
        if not isinstance(username, str) or not username:
            raise InvalidTokenError("missing username claim")

        return TokenClaims(user_id=user_id, username=username)


# ============================================================================
# Masking
# ============================================================================

def mask_api_key(value: str, visible_chars: int = 4) -> str:
    """
    Mask a secret for display.

    Returns:
        ``""`` for an empty value, ``"****"`` when the value is not longer than
        ``visible_chars``, otherwise ``"****"`` followed by its last characters
    """
    if not value:
        return ""
    if len(value) <= visible_chars:
        return MASK_PREFIX
    return MASK_PREFIX + value[-visible_chars:]


def is_masked(value: str) -> bool:
    """True for a value previously produced by :func:`mask_api_key`."""
    return value.startswith(MASK_PREFIX)
