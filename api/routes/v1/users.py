"""
api/routes/v1/users.py -- Admin user management.

Routes:
  POST  /api/v1/users        -- create an account in the first-login state
  GET   /api/v1/users        -- paginated list, optional ?role= filter
  PATCH /api/v1/users/{id}   -- activate/deactivate, change role, force reset

New accounts always start with is_first_login and password_reset_required
set, so their first login returns a reset ticket instead of a session. If no
password is supplied a temporary one is generated and returned exactly once.

Accounts are never deleted, only deactivated.

Security:
  [M4] PATCH blocks self-deactivation and deactivating the last active admin.
"""

from __future__ import annotations

import secrets
import string
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.models import CreatedUserData, RoleEnum, UserCreate, UserListData, UserPatch, UserResponse, envelope
from auth.dependencies import require_admin
from auth.models import User
from auth.store import UserStore
from core.pagination import build_pagination_meta, pagination_range, parse_pagination

# Auth policy: every route here requires the admin role.
router = APIRouter()

_SYMBOLS = "@$!%*?&"


def generate_temporary_password() -> str:
    """Return a 12-character password that satisfies the strength rule."""
    alphabet = string.ascii_letters + string.digits + _SYMBOLS
    required = [
        secrets.choice(string.ascii_lowercase),
        secrets.choice(string.ascii_uppercase),
        secrets.choice(string.digits),
        secrets.choice(_SYMBOLS),
    ]
    chars = required + [secrets.choice(alphabet) for _ in range(8)]
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)


def _store(request: Request) -> UserStore:
    return request.app.state.user_store


def _not_found() -> HTTPException:
    return HTTPException(status_code=404, detail={"code": "not_found", "message": "User not found"})


@router.post("/users", status_code=201)
def create_user(
    request: Request,
    body: UserCreate,
    current_user: User = Depends(require_admin),
) -> JSONResponse:
    """Create a user account. The user must reset the password on first login."""
    user_store = _store(request)
    temporary_password: Optional[str] = None
    password = body.password
    if password is None:
        temporary_password = password = generate_temporary_password()

    new_user = User(
        email=body.email,
        role=body.role.value,
        first_name=body.first_name,
        last_name=body.last_name,
        hashed_password=request.app.state.tokens.hash_password(password),
        is_first_login=True,
        password_reset_required=True,
    )
    try:
        user_id = user_store.create_user(new_user)
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "A user with that email already exists"},
        ) from exc

    created = user_store.get_by_id(user_id)
    if created is None:
        raise HTTPException(
            status_code=500,
            detail={"code": "internal_error", "message": "User not found after write"},
        )
    data = CreatedUserData(
        **UserResponse.from_user(created).model_dump(),
        temporary_password=temporary_password,
    )
    resp = JSONResponse(status_code=201, content=envelope("User created successfully", data))
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/users")
def list_users(
    request: Request,
    page: Optional[int] = Query(default=None, ge=1),
    limit: Optional[int] = Query(default=None, ge=1),
    role: Optional[RoleEnum] = None,
    current_user: User = Depends(require_admin),
) -> dict:
    """List users one page at a time, ordered by email."""
    user_store = _store(request)
    page, limit, skip = parse_pagination(page, limit)
    role_value = role.value if role is not None else None

    total = user_store.count_users(role=role_value)
    users = user_store.list_users(offset=skip, limit=limit, role=role_value)
    meta = build_pagination_meta(total, page, limit)
    data = UserListData(
        items=[UserResponse.from_user(u) for u in users],
        pagination=meta,
        page_range=pagination_range(page, meta["totalPages"]),
    )
    return envelope("Users retrieved successfully", data)


@router.patch("/users/{user_id}")
def update_user(
    request: Request,
    user_id: int,
    body: UserPatch,
    current_user: User = Depends(require_admin),
) -> dict:
    """Update a user's role, active status, or forced-reset flag. Admin only."""
    user_store = _store(request)
    target = user_store.get_by_id(user_id)
    if target is None:
        raise _not_found()

    updates: dict = {}
    if body.role is not None:
        if body.role.value != "admin" and target.role == "admin" and target.is_active:
            if user_store.count_active_admins() <= 1:
                raise HTTPException(
                    status_code=400,
                    detail={"code": "last_admin", "message": "Cannot demote the last active admin account"},
                )
        updates["role"] = body.role.value
    if body.password_reset_required is not None:
        updates["password_reset_required"] = body.password_reset_required
    if body.is_active is not None:
        if not body.is_active and target.id == current_user.id:
            raise HTTPException(
                status_code=400,
                detail={"code": "self_deactivation", "message": "You cannot deactivate your own account"},
            )
        if not body.is_active and target.role == "admin" and target.is_active:
            if user_store.count_active_admins() <= 1:
                raise HTTPException(
                    status_code=400,
                    detail={"code": "last_admin", "message": "Cannot deactivate the last active admin account"},
                )
        updates["is_active"] = body.is_active

    if not updates:
        raise HTTPException(
            status_code=400,
            detail={"code": "no_changes", "message": "No fields to update"},
        )

    user_store.update_user(user_id, **updates)
    updated = user_store.get_by_id(user_id)
    if updated is None:
        raise _not_found()
    return envelope("User updated successfully", UserResponse.from_user(updated))
