"""
auth/models.py -- Domain dataclasses for authentication entities.

Pure data containers. Stores build them from rows, components pass them
around, the HTTP layer maps them to response models.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class UserRole(str, Enum):
    USER = "user"
    PARTNER = "partner"
    ADMIN = "admin"


class AuthMethod(str, Enum):
    EMAIL = "email"
    PHONE = "phone"


class TokenState(str, Enum):
    """State of a refresh token as observed at the moment of a refresh request."""

    ACTIVE = "active"
    EXPIRED = "expired"
    CONSUMED = "consumed"


@dataclass
class User:
    """An identity that can log in.

    At least one of email / phone is set. Both are stored normalized (email
    lower-cased and trimmed, phone trimmed) so lookups compare exact values.

    password_hash is populated only on records read by the credential
    verifier; without_secret() is what leaves the auth core.
    """

    name: str
    role: str = UserRole.USER.value
    id: str | None = None
    email: str | None = None
    phone: str | None = None
    password_hash: str | None = None
    auth_method: str = AuthMethod.EMAIL.value
    is_active: bool = True
    email_verified: bool = False
    phone_verified: bool = False
    last_login_at: str | None = None
    created_at: str | None = None

    def without_secret(self) -> User:
        return replace(self, password_hash=None)


@dataclass
class RefreshToken:
    """One issued refresh token row.

    used_at is None while the token may still be rotated. Once set -- by a
    rotation claim or by revocation -- it never changes again.
    """

    id: str
    user_id: str
    token: str
    expires_at: datetime
    created_at: datetime
    used_at: datetime | None = None

    def state(self, now: datetime) -> TokenState:
        if self.used_at is not None:
            return TokenState.CONSUMED
        if self.expires_at <= now:
            return TokenState.EXPIRED
        return TokenState.ACTIVE


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int  # access token lifetime in seconds


@dataclass(frozen=True)
class RotationResult:
    """Outcome of a successful refresh: the new pair plus the public profile."""

    tokens: TokenPair
    user: User
