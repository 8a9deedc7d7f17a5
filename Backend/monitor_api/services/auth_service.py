"""
Authentication Service Layer.

Handles operator login and account management.
"""

from typing import List

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from monitor_api.core.exceptions import (
    BadRequestError,
    DatabaseError,
    ForbiddenActionError,
    NotFoundError,
    UnauthorizedError,
)
from monitor_api.core.security import PasswordPolicy, TokenManager
from monitor_api.models.user import User
from monitor_api.repositories import UserRepository

logger = structlog.get_logger(__name__)

INVALID_CREDENTIALS = "invalid username or password"


class AuthService:
    """Service for authentication and operator accounts."""

    def __init__(self, db: AsyncSession, tokens: TokenManager):
        """
        Initialize auth service.

        Args:
            db: Database session
            tokens: Token signer used on login
        """
        self.db = db
        self.tokens = tokens
        self.users = UserRepository(db)

    async def login(self, username: str, password: str) -> str:
        """
        Verify credentials and issue a token.

        Raises:
            UnauthorizedError: Unknown user or wrong password
        """
        try:
            user = await self.users.find_by_username(username)
        except SQLAlchemyError as e:
            raise DatabaseError(str(e)) from e

        if user is None or not PasswordPolicy.verify(password, user.password):
            logger.info("Login failed", username=username)
            raise UnauthorizedError(INVALID_CREDENTIALS)

        logger.info("Login succeeded", user_id=user.id, username=user.username)
        return self.tokens.create(user.id, user.username)

    async def get_user(self, user_id: int) -> User:
        try:
            user = await self.users.find_by_id(user_id)
        except SQLAlchemyError as e:
            raise DatabaseError(str(e)) from e
        if user is None:
            raise NotFoundError("user not found")
        return user

    async def list_users(self) -> List[User]:
        try:
            return await self.users.find_all()
        except SQLAlchemyError as e:
            raise DatabaseError(str(e)) from e

    async def create_user(self, username: str, password: str) -> User:
        """
        Create an operator account.

        Raises:
            BadRequestError: Username already taken
        """
        try:
            if await self.users.find_by_username(username) is not None:
                raise BadRequestError("username already exists")
            user = await self.users.create(username, PasswordPolicy.hash(password))
        except IntegrityError as e:
            raise BadRequestError("username already exists") from e
        except SQLAlchemyError as e:
            raise DatabaseError(str(e)) from e

        logger.info("User created", user_id=user.id, username=username)
        return user

    async def change_password(self, user_id: int, password: str) -> None:
        user = await self.get_user(user_id)
        try:
            await self.users.update_password(user, PasswordPolicy.hash(password))
        except SQLAlchemyError as e:
            raise DatabaseError(str(e)) from e
        logger.info("Password changed", user_id=user_id)

    async def delete_user(self, user_id: int, current_user_id: int) -> None:
        """
        Delete an operator account.

        Raises:
            ForbiddenActionError: Attempt to delete the calling account
            NotFoundError: No such user
        """
        if user_id == current_user_id:
            raise ForbiddenActionError("cannot delete current user")
        try:
            deleted = await self.users.delete(user_id)
        except SQLAlchemyError as e:
            raise DatabaseError(str(e)) from e
        if not deleted:
            raise NotFoundError("user not found")
        logger.info("User deleted", user_id=user_id)
