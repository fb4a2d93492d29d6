from __future__ import annotations

from dataclasses import dataclass
from uuid import uuid4


@dataclass(frozen=True, slots=True)
class User:
    id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    role: str = "student"  # student|instructor|admin
    is_active: bool = True

    @staticmethod
    def new(
        *,
        email: str,
        first_name: str = "",
        last_name: str = "",
        role: str = "student",
        id: str | None = None,
    ) -> User:
        return User(
            id=id or str(uuid4()),
            email=email.strip().lower(),
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            role=role,
        )

    @property
    def display_name(self) -> str:
        name = f"{self.first_name} {self.last_name}".strip()
        return name or self.email
