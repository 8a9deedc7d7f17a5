"""
Authentication API Endpoints.

Login issues a bearer token; every other route in the API expects it in
the ``Authorization`` header.
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends

from monitor_api.api.v1.common import http_error
from monitor_api.core.dependencies import CurrentUserDep, DbSessionDep, TokenManagerDep
from monitor_api.core.exceptions import APIError
from monitor_api.core.responses import success
from monitor_api.schemas.auth import CurrentUserResponse, LoginRequest, LoginResponse
from monitor_api.services.auth_service import AuthService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


# =============================================================================
# Dependencies
# =============================================================================

async def get_auth_service(db: DbSessionDep, tokens: TokenManagerDep) -> AuthService:
    """Get AuthService instance bound to the request session."""
    return AuthService(db, tokens)


AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/login")
async def login(body: LoginRequest, service: AuthServiceDep):
    """
    Authenticate with username and password.

    Returns a signed token and the username it was issued for.
    """
    try:
        token = await service.login(body.username, body.password)
    except APIError as e:
        raise http_error(e)
    return success(LoginResponse(token=token, username=body.username))


@router.get("/me")
async def get_me(current_user: CurrentUserDep):
    """Identity carried by the request's token."""
    return success(CurrentUserResponse(user_id=current_user.user_id, username=current_user.username))
