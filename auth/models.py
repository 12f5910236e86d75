"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero I/O). UserRecord is a frozen
snapshot: policy and token operations never mutate it, they return a
Transition holding the next snapshot plus the names of the fields that
changed. The caller persists exactly those fields via UserStore.update().

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime

ROLE_USER = "user"
ROLE_ADMIN = "admin"


@dataclass(frozen=True)
class Credentials:
    """Identity triple carried inside a session token.

    Not a password -- this is what the gate attaches to a request once the
    bearer token has been verified.
    """

    id: str
    email: str
    username: str


@dataclass(frozen=True)
class UserRecord:
    """Authentication-relevant projection of a user account.

    Token pairs (verification_token / verification_token_expires and
    password_reset_token / password_reset_expires) are always both set or
    both None. is_locked is informational; the effective lock is decided by
    lockout_until alone (see AccountSecurityPolicy.is_account_locked).
    """

    id: str
    email: str
    username: str
    password_secret: str  # PasswordCipher output, reversible
    first_name: str | None = None
    last_name: str | None = None
    role: str = ROLE_USER
    is_verified: bool = False
    is_active: bool = True
    is_locked: bool = False
    failed_login_attempts: int = 0
    lockout_until: datetime | None = None
    verification_token: str | None = None
    verification_token_expires: datetime | None = None
    password_reset_token: str | None = None
    password_reset_expires: datetime | None = None
    last_login: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None

    @property
    def credentials(self) -> Credentials:
        return Credentials(id=self.id, email=self.email, username=self.username)

    def evolve(self, **changes) -> Transition:
        """Return a Transition to a copy of this record with *changes* applied."""
        return Transition(user=dataclasses.replace(self, **changes), changed=frozenset(changes))


@dataclass(frozen=True)
class Transition:
    """Result of a state change: the new snapshot and which fields moved."""

    user: UserRecord
    changed: frozenset[str] = field(default_factory=frozenset)

    def changes(self) -> dict:
        """Field -> new value mapping, ready for UserStore.update(**changes)."""
        return {name: getattr(self.user, name) for name in sorted(self.changed)}


@dataclass(frozen=True)
class ExternalIdentity:
    """Identity asserted by an external OAuth provider after token verification."""

    email: str
    email_verified: bool
    name: str | None = None
    given_name: str | None = None
    family_name: str | None = None


@dataclass(frozen=True)
class AuthResult:
    """Session token returned by a use case; created marks a brand-new account."""

    token: str
    created: bool = False
