"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two auth methods are checked in priority order for normal sessions:
  1. JWT cookie ("access_token") -- set by the login flow.
  2. Authorization: Bearer <token> header -- API clients and the dashboard.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.
require_roles(...) builds a dependency that raises HTTP 403 for other roles.
get_reset_ticket_user() accepts ONLY a password_reset ticket (Bearer header),
never an access token, and is used by the first-login reset endpoint.

Collaborators are read from app.state (tokens, user_store), set in lifespan.

Layer rule: auth/dependencies.py may import from fastapi because this module
is part of the FastAPI dependency injection system. No imports from api/.
"""

from __future__ import annotations

from typing import Callable, Optional

from fastapi import HTTPException, Request

from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import TokenService


def _bearer_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:]
    return None


def try_get_current_user(request: Request) -> Optional[User]:
    """Attempt to authenticate the request via cookie or Bearer access token.

    Returns the authenticated User on success, None on any failure.
    Never raises -- callers that need a hard 401 should use get_current_user().
    """
    tokens: TokenService = request.app.state.tokens
    user_store: UserStore = request.app.state.user_store

    for token in (request.cookies.get("access_token"), _bearer_token(request)):
        if not token:
            continue
        payload = tokens.decode_access_token(token)
        if payload is None:
            continue
        user = user_store.get_by_id(payload["user_id"])
        if user is not None and user.is_active:
            return user
    return None


def get_current_user(request: Request) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required"},
        )
    return user


def require_roles(*roles: Role) -> Callable[[Request], User]:
    """Build a dependency that admits only the given roles.

        @router.get("/users")
        async def route(user: User = Depends(require_roles(Role.ADMIN))): ...
    """
    allowed = {r.value for r in roles}

    def dependency(request: Request) -> User:
        user = get_current_user(request)
        if user.role not in allowed:
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": "You do not have permission to perform this action"},
            )
        return user

    return dependency


require_admin = require_roles(Role.ADMIN)


def get_reset_ticket_user(request: Request) -> int:
    """Return the user_id carried by a valid password_reset ticket.

    The ticket is the tempToken from a login that required a password reset.
    Access tokens are rejected here, so a full session cannot be used to
    skip the pending-reset check.
    """
    tokens: TokenService = request.app.state.tokens
    token = _bearer_token(request)
    payload = tokens.decode_reset_ticket(token) if token else None
    if payload is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "invalid_token", "message": "Invalid or expired token"},
        )
    return payload["user_id"]
