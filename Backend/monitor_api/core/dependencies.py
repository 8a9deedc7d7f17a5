"""
Dependency injection utilities for FastAPI.
"""

from typing import Annotated

import structlog
from fastapi import Depends, HTTPException, Request, status

from monitor_api.core.database import AsyncSession, get_db
from monitor_api.core.security import InvalidTokenError, TokenClaims, TokenManager

logger = structlog.get_logger(__name__)

AUTH_HEADER = "Authorization"
AUTH_SCHEME = "Bearer"


# ============================================================================
# Database Dependency
# ============================================================================

DbSessionDep = Annotated[AsyncSession, Depends(get_db)]


# ============================================================================
# Token Dependencies
# ============================================================================

_token_manager: TokenManager | None = None


def get_token_manager() -> TokenManager:
    """Get the process-wide token manager."""
    global _token_manager

    if _token_manager is None:
        _token_manager = TokenManager()
    return _token_manager


TokenManagerDep = Annotated[TokenManager, Depends(get_token_manager)]


# ============================================================================
# Current User Dependency
# ============================================================================

def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=message,
        headers={"WWW-Authenticate": AUTH_SCHEME},
    )


async def get_current_user(request: Request, tokens: TokenManagerDep) -> TokenClaims:
    """
    Authenticate the request from its ``Authorization: Bearer <token>`` header.

    The identity is also stored on ``request.state`` for logging.

    Raises 401 with ``no token``, ``bad format`` or ``invalid or expired``.
    """
    header = request.headers.get(AUTH_HEADER)
    if not header:
        raise _unauthorized("no token")

    parts = header.split(" ", 1)
    if len(parts) != 2 or parts[0] != AUTH_SCHEME:
        raise _unauthorized("bad format")

    try:
        claims = tokens.parse(parts[1])
    except InvalidTokenError as e:
        logger.info("Token rejected", path=request.url.path, reason=str(e))
        raise _unauthorized("invalid or expired")

    request.state.user_id = claims.user_id
    request.state.username = claims.username
    return claims


CurrentUserDep = Annotated[TokenClaims, Depends(get_current_user)]
