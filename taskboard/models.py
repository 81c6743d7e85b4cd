from __future__ import annotations

from dataclasses import dataclass


# === Domain objects used by the ordering engine ===


@dataclass(frozen=True)
class Sibling:
    """One orderable row as seen by the ordering engine."""

    id: str
    scope_key: str
    position: int


@dataclass(frozen=True)
class Placement:
    position: int
    scope_key: str


@dataclass(frozen=True)
class AuthenticatedUser:
    id: str
    sub: str
    email: str
    role: str = "user"  # user|admin

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
