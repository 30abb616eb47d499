"""
User repository.

Reads and writes the ``users`` table through an async session factory.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..errors import ConflictError, NotFoundError
from .models import User

logger = logging.getLogger(__name__)


class UserStore:
    """Async access to user accounts and their wallet details."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_user(self, user_id: int) -> Optional[User]:
        async with self._session_factory() as session:
            return await session.get(User, user_id)

    async def get_user_by_username(self, username: str) -> Optional[User]:
        async with self._session_factory() as session:
            result = await session.execute(select(User).where(User.username == username))
            return result.scalar_one_or_none()

    async def create_user(self, username: str, password_hash: str) -> User:
        async with self._session_factory() as session:
            user = User(username=username, password=password_hash)
            session.add(user)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ConflictError("Username already exists") from exc
            await session.refresh(user)
            logger.info("Created user id=%s", user.id)
            return user

    async def update_user_wallet(
        self,
        user_id: int,
        *,
        avalanche_address: Optional[str],
        private_key: Optional[str],
    ) -> User:
        async with self._session_factory() as session:
            user = await session.get(User, user_id)
            if user is None:
                raise NotFoundError("User not found")

            user.avalanche_address = avalanche_address
            user.private_key = private_key
            await session.commit()
            await session.refresh(user)
            logger.info("Updated wallet for user id=%s", user_id)
            return user


__all__ = ["UserStore"]
