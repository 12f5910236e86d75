"""
API request and response models for AccountGuard REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import UserRecord

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Deliberately loose: one "@", something on both sides, a dot in the domain.
# Deliverability is proven by the verification token, not by a regex.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class RoleEnum(str, Enum):
    user = "user"
    admin = "admin"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/register.

    Identity fields are stripped before validation. The password is kept
    exactly as sent, the same as on login and reset.
    """

    email: str = Field(min_length=3, max_length=50, pattern=EMAIL_PATTERN)
    username: str = Field(min_length=3, max_length=30)
    password: str = Field(min_length=1, max_length=255)
    first_name: Optional[str] = Field(default=None, max_length=50)
    last_name: Optional[str] = Field(default=None, max_length=50)

    @field_validator("email", "username", "first_name", "last_name", mode="before")
    @classmethod
    def _strip(cls, value):
        return value.strip() if isinstance(value, str) else value


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/login.

    Both fields are kept as sent. AuthService normalizes the email and
    compares the password byte for byte.
    """

    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class GoogleLoginRequest(BaseModel):
    """Request body for POST /api/v1/login/google."""

    google_token: str = Field(min_length=1, max_length=4096)


class EmailRequest(BaseModel):
    """Request body for POST /forgot-password and POST /verify-email/request."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=1, max_length=255)


class ResetPasswordRequest(BaseModel):
    """Request body for POST /api/v1/reset-password."""

    email: str = Field(min_length=1, max_length=255)
    token: str = Field(min_length=1, max_length=128)
    new_password: str = Field(min_length=1, max_length=255)


class VerifyEmailRequest(BaseModel):
    """Request body for POST /api/v1/verify-email."""

    email: str = Field(min_length=1, max_length=255)
    token: str = Field(min_length=1, max_length=128)


class RoleUpdate(BaseModel):
    """Request body for PATCH /api/v1/users/{user_id}/role."""

    role: RoleEnum


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class TokenResponse(BaseModel):
    """Every sign-in style endpoint returns a single opaque token."""

    model_config = ConfigDict(frozen=True)

    token: str


class ProfileResponse(BaseModel):
    """Public view of a user record. Never includes secrets or pending tokens."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    username: str
    first_name: Optional[str]
    last_name: Optional[str]
    role: str
    is_verified: bool
    is_active: bool
    last_login: Optional[datetime]
    created_at: Optional[datetime]

    @classmethod
    def from_record(cls, user: UserRecord) -> "ProfileResponse":
        """Factory Method: the mapping lives next to the output model."""
        return cls(
            id=user.id,
            email=user.email,
            username=user.username,
            first_name=user.first_name,
            last_name=user.last_name,
            role=user.role,
            is_verified=user.is_verified,
            is_active=user.is_active,
            last_login=user.last_login,
            created_at=user.created_at,
        )


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

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
