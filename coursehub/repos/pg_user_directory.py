"""PostgreSQL implementation of UserDirectory."""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursehub.core.errors import NotFoundError
from coursehub.db.tables import UserRow
from coursehub.models.user import User
from coursehub.repos.pg_errors import duplicate_key


class PgUserDirectory:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def get(self, user_id: str) -> User | None:
        async with self._sessions() as session:
            row = await session.get(UserRow, user_id)
            return _row_to_user(row) if row is not None else None

    async def get_display_name(self, user_id: str) -> str:
        user = await self.get(user_id)
        if user is None:
            raise NotFoundError("user not found")
        return user.display_name

    async def get_role(self, user_id: str) -> str:
        user = await self.get(user_id)
        if user is None:
            raise NotFoundError("user not found")
        return user.role

    async def add(self, user: User) -> User:
        try:
            async with self._sessions() as session, session.begin():
                session.add(
                    UserRow(
                        id=user.id,
                        email=user.email,
                        first_name=user.first_name,
                        last_name=user.last_name,
                        role=user.role,
                        is_active=user.is_active,
                    )
                )
        except IntegrityError as exc:
            dup = duplicate_key(exc)
            if dup is None:
                raise
            raise dup from None
        return user


def _row_to_user(row: UserRow) -> User:
    return User(
        id=row.id,
        email=row.email,
        first_name=row.first_name or "",
        last_name=row.last_name or "",
        role=row.role,
        is_active=row.is_active,
    )
