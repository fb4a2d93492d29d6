from __future__ import annotations

from typing import Protocol

from coursehub.core.errors import DuplicateKeyError, NotFoundError
from coursehub.models.user import User


class UserDirectory(Protocol):
    async def get(self, user_id: str) -> User | None: ...
    async def get_display_name(self, user_id: str) -> str: ...
    async def get_role(self, user_id: str) -> str: ...
    async def add(self, user: User) -> User: ...


class InMemoryUserDirectory:
    def __init__(self) -> None:
        self._by_id: dict[str, User] = {}

    async def get(self, user_id: str) -> User | None:
        return self._by_id.get(user_id)

    async def get_display_name(self, user_id: str) -> str:
        user = self._by_id.get(user_id)
        if user is None:
            raise NotFoundError("user not found")
        return user.display_name

    async def get_role(self, user_id: str) -> str:
        user = self._by_id.get(user_id)
        if user is None:
            raise NotFoundError("user not found")
        return user.role

    async def add(self, user: User) -> User:
        if any(u.email == user.email for u in self._by_id.values()):
            raise DuplicateKeyError("email", "email already exists")
        self._by_id[user.id] = user
        return user

    def clear(self) -> None:
        self._by_id.clear()
