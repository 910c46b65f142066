"""
Trust boundary for query access.

Template and semantic-search queries are safe for any caller because every
caller-supplied value becomes a literal in a typed query. Ad-hoc query text is
equivalent to unrestricted store access and is reserved for administrators.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Role(Enum):
    """Access roles."""

    READER = "reader"       # Template and search queries
    ADMIN = "admin"         # Also ad-hoc query text


class AuthorizationError(Exception):
    """Raised when authorization fails."""

    def __init__(self, message: str, principal: str | None = None):
        self.principal = principal
        super().__init__(message)


@dataclass(frozen=True)
class AuthContext:
    """Who is calling, as established by the surrounding application."""

    principal: str | None = None
    role: Role | None = None

    @classmethod
    def admin(cls, principal: str = "admin") -> "AuthContext":
        return cls(principal=principal, role=Role.ADMIN)

    @property
    def is_authenticated(self) -> bool:
        """Check if context is authenticated."""
        return self.principal is not None and self.role is not None

    @property
    def is_admin(self) -> bool:
        return self.is_authenticated and self.role == Role.ADMIN


def require_admin(auth: Optional[AuthContext], action: str = "ad-hoc query") -> None:
    """Require an authenticated admin. Raises AuthorizationError if denied."""
    if auth is None or not auth.is_authenticated:
        raise AuthorizationError("Authentication required")
    if not auth.is_admin:
        raise AuthorizationError(
            f"Permission denied for {action} (role: {auth.role.value})",
            auth.principal,
        )
