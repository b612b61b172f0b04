"""
API request and response models for authcore REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

The request models enforce only shape (types, lengths). Semantic rules
(password policy, phone pattern, auth method consistency) live in
auth/validation.py and surface as AuthError(VALIDATION_ERROR), so direct
callers of the core get the same checks as HTTP clients.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import TokenPair, User

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=32)
    password: str = Field(min_length=1, max_length=255)
    name: str = Field(min_length=1, max_length=100)
    auth_method: Optional[str] = Field(default=None, description="'email' or 'phone'; derived when omitted.")


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login. identifier is an email or phone number."""

    model_config = ConfigDict(str_strip_whitespace=True)

    identifier: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class RefreshRequest(BaseModel):
    """Request body for POST /api/v1/auth/refresh and POST /api/v1/auth/logout."""

    model_config = ConfigDict(str_strip_whitespace=True)

    refresh_token: str = Field(min_length=32, max_length=500)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public profile of a user. Never carries the password hash."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: Optional[str]
    phone: Optional[str]
    name: str
    role: str
    auth_method: str
    email_verified: bool
    phone_verified: bool
    created_at: Optional[str]
    last_login_at: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            phone=user.phone,
            name=user.name,
            role=user.role,
            auth_method=user.auth_method,
            email_verified=user.email_verified,
            phone_verified=user.phone_verified,
            created_at=user.created_at,
            last_login_at=user.last_login_at,
        )


class TokenPairResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int

    @classmethod
    def from_pair(cls, pair: TokenPair) -> "TokenPairResponse":
        return cls(
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            expires_in=pair.expires_in,
        )


class AuthResponse(BaseModel):
    """Response for register, login and refresh: the user plus a fresh token pair."""

    model_config = ConfigDict(frozen=True)

    user: UserResponse
    tokens: TokenPairResponse


class LogoutResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    revoked: int


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    components: dict[str, str] = {}
