"""
auth/models.py -- Domain dataclasses for RBAC entities and credential claims.

Pattern: Data class. Stores and services do the work; these own the shape.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

# Permission strings checked by the built-in routes. The CLI bootstrap command
# seeds the registry and the admin role with exactly this list.
BUILTIN_PERMISSIONS: list[str] = [
    "user:read",
    "user:write",
    "role:read",
    "role:write",
    "permission:read",
    "permission:write",
    "x/layout:read",
    "x/layout:write",
]


class CredentialSource(str, Enum):
    """How the bearer proved their identity before the credential was minted."""

    local = "local"  # username + password against the local store
    exchanged = "exchanged"  # external brick auth token


class AuthType(str, Enum):
    local = "local"
    sso = "sso"
    both = "both"


@dataclass
class User:
    """A local account.

    password_hash is a bcrypt hash. The plaintext is never stored and the
    hash is never serialized to API responses.
    """

    username: str
    password_hash: str
    role: str  # name of a Role; not enforced as a foreign key
    id: int | None = None
    created_at: str | None = None


@dataclass
class Role:
    name: str
    permissions: list[str] = field(default_factory=list)
    id: int | None = None


@dataclass(frozen=True)
class Claims:
    """Decoded payload of a credential.

    permissions is the snapshot taken when the credential was minted. It is
    not re-read from the store at validation time, so it can lag behind role
    edits until the credential expires.
    """

    subject: str
    role: str
    permissions: tuple[str, ...]
    issued_at: int
    expires_at: int
    source: CredentialSource = CredentialSource.local

    def has_permission(self, permission: str) -> bool:
        """Exact string membership. No wildcards, prefixes, or hierarchy."""
        return permission in self.permissions

    def user_info(self) -> dict:
        return {
            "username": self.subject,
            "role": self.role,
            "permissions": list(self.permissions),
        }


@dataclass(frozen=True)
class ExternalPrincipal:
    """Identity recovered from a verified external credential."""

    subject: str
    username: str
