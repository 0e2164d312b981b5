"""
API request and response models for the SIWES auth REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Wire format is camelCase (the dashboard is a TypeScript client); Python
attributes stay snake_case via an alias generator. Responses are dumped with
by_alias=True.

Every response body is wrapped in the same envelope:
    success:   {"success": true,  "message": ..., "data": ..., "timestamp": ...}
    failure:   {"success": false, "message": ..., "code": ..., "timestamp": ...}
"""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from auth.models import User, dashboard_for

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"
PHONE_PATTERN = r"^(\+?\d{1,3}[- ]?)?\d{10,14}$"

# At least one lower, upper, digit and special character; only these characters.
_PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]{8,}$")
PASSWORD_RULE = "Password must be at least 8 characters with uppercase, lowercase, number, and special character"


def check_password_strength(value: str) -> str:
    if not _PASSWORD_RE.match(value):
        raise ValueError(PASSWORD_RULE)
    return value


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RoleEnum(str, Enum):
    admin = "admin"
    coordinator = "coordinator"
    departmental_supervisor = "departmental_supervisor"
    industrial_supervisor = "industrial_supervisor"
    student = "student"


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


class ApiResponse(BaseModel):
    """Success envelope shared by every endpoint."""

    success: bool = True
    message: str
    data: Optional[Any] = None
    timestamp: str = Field(default_factory=_utc_timestamp)


class ErrorResponse(BaseModel):
    """Failure envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    success: bool = False
    message: str
    code: str
    detail: Optional[str] = None
    timestamp: str = Field(default_factory=_utc_timestamp)


def envelope(message: str, data: Any = None) -> dict:
    """Return a success envelope as a JSON-ready dict.

    data may be a pydantic model (dumped with camelCase aliases) or a plain value.
    """
    if isinstance(data, BaseModel):
        data = data.model_dump(by_alias=True)
    body = ApiResponse(message=message, data=data).model_dump()
    if body["data"] is None:
        body.pop("data")
    return body


# ---------------------------------------------------------------------------
# Auth request models
# ---------------------------------------------------------------------------


class LoginRequest(_CamelModel):
    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=1, max_length=255)


class FirstLoginResetRequest(_CamelModel):
    """Body for POST /auth/reset-password-first-login. The user comes from the reset ticket."""

    new_password: str = Field(max_length=72)

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, value: str) -> str:
        return check_password_strength(value)


class ForgotPasswordRequest(_CamelModel):
    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)


class ResetPasswordRequest(_CamelModel):
    token: str = Field(min_length=1, max_length=128)
    password: str = Field(
        max_length=72,
        validation_alias=AliasChoices("password", "newPassword", "new_password"),
    )

    @field_validator("password")
    @classmethod
    def validate_password(cls, value: str) -> str:
        return check_password_strength(value)


class ChangePasswordRequest(_CamelModel):
    """Accepts either oldPassword or currentPassword for the current password."""

    old_password: str = Field(
        min_length=1,
        max_length=255,
        validation_alias=AliasChoices("oldPassword", "currentPassword", "old_password"),
    )
    new_password: str = Field(max_length=72)

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, value: str) -> str:
        return check_password_strength(value)


class RefreshRequest(_CamelModel):
    refresh_token: str = Field(min_length=1)


class ProfileUpdate(_CamelModel):
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    address: Optional[str] = Field(default=None, max_length=500)
    bio: Optional[str] = Field(default=None, max_length=500)

    @field_validator("first_name", "last_name")
    @classmethod
    def names_not_null(cls, value: Optional[str]) -> str:
        # Omitted is fine; an explicit null would blank a required column.
        if value is None:
            raise ValueError("must not be null")
        return value


# ---------------------------------------------------------------------------
# User management request models
# ---------------------------------------------------------------------------


class UserCreate(_CamelModel):
    """Body for POST /api/v1/users. A temporary password is generated when omitted."""

    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    role: RoleEnum
    password: Optional[str] = Field(default=None, max_length=72)

    @field_validator("password")
    @classmethod
    def validate_password(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else check_password_strength(value)


class UserPatch(_CamelModel):
    is_active: Optional[bool] = None
    role: Optional[RoleEnum] = None
    password_reset_required: Optional[bool] = None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(_CamelModel):
    """Public view of a user. Never includes password or reset-token material."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: int
    email: str
    first_name: str
    last_name: str
    full_name: str
    role: str
    is_active: bool
    is_first_login: bool
    password_reset_required: bool
    phone: Optional[str] = None
    address: Optional[str] = None
    bio: Optional[str] = None
    last_login: Optional[str] = None
    created_at: Optional[str] = None
    redirect_to: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            full_name=user.full_name,
            role=user.role,
            is_active=user.is_active,
            is_first_login=user.is_first_login,
            password_reset_required=user.password_reset_required,
            phone=user.phone,
            address=user.address,
            bio=user.bio,
            last_login=user.last_login,
            created_at=user.created_at,
            redirect_to=dashboard_for(user.role),
        )


class SessionData(_CamelModel):
    access_token: str
    refresh_token: str
    user: UserResponse


class ResetRequiredData(_CamelModel):
    requires_password_reset: bool = True
    is_first_login: bool
    user_id: int
    email: str
    temp_token: str


class RefreshData(_CamelModel):
    access_token: str
    user: UserResponse


class CreatedUserData(UserResponse):
    """Returned once on user creation. temporary_password is set only when generated."""

    temporary_password: Optional[str] = None


class UserListData(_CamelModel):
    items: list[UserResponse]
    pagination: dict
    page_range: list[Union[int, str]]


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
