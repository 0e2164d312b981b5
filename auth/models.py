"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Stores and the
workflow do the work; these classes own the domain shape.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Role(str, Enum):
    ADMIN = "admin"
    COORDINATOR = "coordinator"
    DEPARTMENTAL_SUPERVISOR = "departmental_supervisor"
    INDUSTRIAL_SUPERVISOR = "industrial_supervisor"
    STUDENT = "student"


# Initial dashboard route per role. The frontend redirects here after login.
ROLE_DASHBOARDS: dict[str, str] = {
    Role.ADMIN.value: "/admin/dashboard",
    Role.COORDINATOR.value: "/coordinator/dashboard",
    Role.DEPARTMENTAL_SUPERVISOR.value: "/d-supervisor/dashboard",
    Role.INDUSTRIAL_SUPERVISOR.value: "/i-supervisor/dashboard",
    Role.STUDENT.value: "/student/dashboard",
}


def dashboard_for(role: str) -> str:
    return ROLE_DASHBOARDS.get(role, "/login")


@dataclass
class User:
    """A SIWES account holder.

    email is stored lowercased; the store normalizes on every write and lookup.

    is_first_login / password_reset_required route the user into the reset
    flow before a durable session is issued. Fresh accounts start with both set.

    reset_token_hash is HMAC-SHA256(SECRET_KEY, raw_token). The raw token only
    ever exists in the reset email.

    token_version is embedded in refresh tokens and incremented on every
    password mutation, which invalidates refresh tokens issued before it.
    """

    email: str
    role: str
    hashed_password: str
    first_name: str = ""
    last_name: str = ""
    id: Optional[int] = None
    is_active: bool = True
    is_first_login: bool = True
    password_reset_required: bool = True
    reset_token_hash: Optional[str] = None
    reset_token_expiry: Optional[str] = None  # ISO 8601 UTC
    token_version: int = 0
    phone: Optional[str] = None
    address: Optional[str] = None
    bio: Optional[str] = None
    last_login: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def needs_password_reset(self) -> bool:
        return self.is_first_login or self.password_reset_required
