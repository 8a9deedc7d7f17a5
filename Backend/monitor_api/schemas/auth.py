"""
Authentication and user management schemas.
"""

from datetime import datetime
from typing import Optional

from pydantic import Field

from monitor_api.schemas.common import CamelModel


# =============================================================================
# Request Schemas
# =============================================================================

class LoginRequest(CamelModel):
    username: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., min_length=1)


class CreateUserRequest(CamelModel):
    username: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., min_length=1, max_length=128)


class ChangePasswordRequest(CamelModel):
    password: str = Field(..., min_length=1, max_length=128)


# =============================================================================
# Response Schemas
# =============================================================================

class LoginResponse(CamelModel):
    token: str
    username: str


class CurrentUserResponse(CamelModel):
    user_id: int
    username: str


class UserResponse(CamelModel):
    """An operator account; the password hash is never returned."""

    id: int
    username: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
