"""
Operator account API Endpoints.
"""

from fastapi import APIRouter

from monitor_api.api.v1.auth import AuthServiceDep
from monitor_api.api.v1.common import http_error
from monitor_api.core.dependencies import CurrentUserDep
from monitor_api.core.exceptions import APIError
from monitor_api.core.responses import success
from monitor_api.schemas.auth import ChangePasswordRequest, CreateUserRequest, UserResponse

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("")
async def list_users(service: AuthServiceDep, current_user: CurrentUserDep):
    try:
        users = await service.list_users()
    except APIError as e:
        raise http_error(e)
    return success([UserResponse.model_validate(user) for user in users])


@router.post("")
async def create_user(body: CreateUserRequest, service: AuthServiceDep, current_user: CurrentUserDep):
    """Create an operator account; duplicate usernames are rejected with 400."""
    try:
        user = await service.create_user(body.username, body.password)
    except APIError as e:
        raise http_error(e)
    return success(UserResponse.model_validate(user))


@router.put("/{user_id}/password")
async def change_password(
    user_id: int,
    body: ChangePasswordRequest,
    service: AuthServiceDep,
    current_user: CurrentUserDep,
):
    try:
        await service.change_password(user_id, body.password)
    except APIError as e:
        raise http_error(e)
    return success()


@router.delete("/{user_id}")
async def delete_user(user_id: int, service: AuthServiceDep, current_user: CurrentUserDep):
    """Delete an operator account. The calling account cannot delete itself."""
    try:
        await service.delete_user(user_id, current_user.user_id)
    except APIError as e:
        raise http_error(e)
    return success()
