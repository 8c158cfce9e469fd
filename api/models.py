"""
API request and response models for brick-auth REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Password hashes never appear in any response model.
"""

from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from auth.tokens import PASSWORD_MAX_BYTES, password_too_long


def _check_password_bytes(value: str) -> str:
    """Reject passwords bcrypt cannot hash whole (limit is in UTF-8 bytes)."""
    if password_too_long(value):
        raise ValueError(f"password must be at most {PASSWORD_MAX_BYTES} bytes")
    return value


Password = Annotated[str, Field(min_length=1), AfterValidator(_check_password_bytes)]


# ---------------------------------------------------------------------------
# Auth -- request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=255)
    password: Password


class ExchangeRequest(BaseModel):
    """Request body for POST /auth/exchange."""

    model_config = ConfigDict(populate_by_name=True)

    brick_auth_token: str = Field(alias="brickAuthToken", min_length=1)


class ValidateRequest(BaseModel):
    """Request body for POST /auth/validate."""

    token: str = Field(min_length=1)


class AuthTypeRequest(BaseModel):
    """Request body for POST /auth/auth-type.

    auth_type is a plain string here so an unknown value reaches the service
    and is rejected there with the invalid_auth_type code.
    """

    auth_type: str


# ---------------------------------------------------------------------------
# Auth -- response models
# ---------------------------------------------------------------------------


class TokenResponse(BaseModel):
    """Response for POST /auth/login and POST /auth/exchange."""

    model_config = ConfigDict(frozen=True)

    token: str
    type: str = "Bearer"


class UserInfo(BaseModel):
    """Identity recovered from a credential's claims."""

    model_config = ConfigDict(frozen=True)

    username: str
    role: str
    permissions: list[str]


class ValidateResponse(BaseModel):
    """Response for POST /auth/validate."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    valid: bool
    user_info: Optional[UserInfo] = Field(default=None, serialization_alias="userInfo")


class AuthTypeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    auth_type: str


class AuthTypeUpdatedResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    auth_type: str


# ---------------------------------------------------------------------------
# RBAC administration
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    """Request body for POST /user/users."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=255)
    password: Password
    role: str = Field(min_length=1, max_length=255)


class UserUpdate(BaseModel):
    """Request body for PUT /user/users/{username}. Omitted fields stay unchanged."""

    model_config = ConfigDict(str_strip_whitespace=True)

    password: Optional[Password] = None
    role: Optional[str] = Field(default=None, min_length=1, max_length=255)


class UserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    username: str
    role: str


class RoleCreate(BaseModel):
    """Request body for POST /user/roles."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    permissions: list[str] = Field(default_factory=list)


class RoleUpdate(BaseModel):
    """Request body for PUT /user/roles/{name}. Replaces the whole permission set."""

    permissions: list[str]


class RoleResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    permissions: list[str]


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


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
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    service: str = "brick-auth"
    timestamp: str
