"""
api/routes/v1/auth.py -- Authentication and password-reset REST endpoints.

Routes:
  POST /api/v1/auth/login                       -- password login; session or reset ticket
  POST /api/v1/auth/reset-password-first-login  -- set own password (reset ticket required)
  POST /api/v1/auth/forgot-password             -- email a reset link (generic answer)
  POST /api/v1/auth/reset-password              -- consume an emailed reset token
  POST /api/v1/auth/change-password             -- change password (requires auth)
  POST /api/v1/auth/refresh-token               -- new access token from a refresh token
  POST /api/v1/auth/logout                      -- clears cookie (requires auth)
  GET  /api/v1/auth/me                          -- current user (requires auth)
  GET  /api/v1/auth/profile                     -- current user profile (requires auth)
  PUT  /api/v1/auth/profile                     -- update own profile (requires auth)

All business decisions live in auth/workflow.py. Handlers translate HTTP to
workflow calls and workflow results to the response envelope. Workflow
failures (AuthError subclasses) are rendered by the handler in api/main.py.

Handlers are sync def: bcrypt is CPU-bound and the store is synchronous, so
FastAPI runs them in its thread pool instead of blocking the event loop.

Security:
  [H2] /login and /forgot-password are rate-limited per IP (LOGIN_RATE_LIMIT).
       @limiter.limit must sit below @router.post so the limited wrapper is
       the registered endpoint.
  [C1] AuthWorkflow.login() equalizes timing for unknown emails.
  [M5] Cache-Control: no-store on every response that carries a credential.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_rate_limit
from api.models import (
    ChangePasswordRequest,
    FirstLoginResetRequest,
    ForgotPasswordRequest,
    LoginRequest,
    ProfileUpdate,
    RefreshData,
    RefreshRequest,
    ResetPasswordRequest,
    ResetRequiredData,
    SessionData,
    UserResponse,
    envelope,
)
from auth.dependencies import get_current_user, get_reset_ticket_user
from auth.mailer import send_password_reset_email
from auth.models import User
from auth.workflow import AuthWorkflow, PasswordResetRequired, Session

# Auth policy:
# - POST /auth/login, /auth/forgot-password, /auth/reset-password, /auth/refresh-token: public
# - POST /auth/reset-password-first-login: reset ticket (tempToken from login) only
# - everything else: requires an access token (get_current_user)
router = APIRouter()


def _workflow(request: Request) -> AuthWorkflow:
    return request.app.state.workflow


def _no_store(resp: JSONResponse) -> JSONResponse:
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


def _session_response(request: Request, message: str, session: Session) -> JSONResponse:
    data = SessionData(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        user=UserResponse.from_user(session.user),
    )
    resp = JSONResponse(status_code=200, content=envelope(message, data))
    request.app.state.tokens.set_auth_cookie(resp, session.access_token)
    return _no_store(resp)


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/login")
@limiter.limit(login_rate_limit)  # [H2]
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    Returns either a full session (tokens + user) or, for accounts with a
    pending reset, {requiresPasswordReset, isFirstLogin, userId, email,
    tempToken}. No cookie is set in the second case.
    """
    result = _workflow(request).login(body.email, body.password)
    if isinstance(result, PasswordResetRequired):
        data = ResetRequiredData(
            is_first_login=result.is_first_login,
            user_id=result.user_id,
            email=result.email,
            temp_token=result.temp_token,
        )
        return _no_store(JSONResponse(status_code=200, content=envelope("Password reset required", data)))
    return _session_response(request, "Login successful", result)


@router.post("/auth/reset-password-first-login")
def reset_password_first_login(
    request: Request,
    body: FirstLoginResetRequest,
    user_id: int = Depends(get_reset_ticket_user),
) -> JSONResponse:
    """Set the user's own password after a login that required a reset.

    The user is identified by the reset ticket in the Authorization header,
    never by a user id in the body.
    """
    session = _workflow(request).reset_password_first_login(user_id, body.new_password)
    return _session_response(request, "Password reset successful", session)


@router.post("/auth/forgot-password")
@limiter.limit(login_rate_limit)  # [H2]
def forgot_password(request: Request, body: ForgotPasswordRequest, background_tasks: BackgroundTasks) -> dict:
    """Send a reset link if an active account exists.

    The answer is identical either way so the endpoint cannot be used to
    discover which emails have accounts. Mail goes out after the response.
    """
    issued = _workflow(request).request_password_reset(body.email)
    if issued is not None:
        user, raw_token = issued
        background_tasks.add_task(send_password_reset_email, request.app.state.settings, user.email, raw_token)
    return envelope("If an account with that email exists, a reset link has been sent.")


@router.post("/auth/reset-password")
def reset_password(request: Request, body: ResetPasswordRequest) -> dict:
    """Consume an emailed reset token and set a new password."""
    _workflow(request).reset_password_with_token(body.token, body.password)
    return envelope("Password reset successful. You can now log in.")


@router.post("/auth/refresh-token")
def refresh_token(request: Request, body: RefreshRequest) -> JSONResponse:
    """Exchange a refresh token for a new access token."""
    refreshed = _workflow(request).refresh_session(body.refresh_token)
    data = RefreshData(access_token=refreshed.access_token, user=UserResponse.from_user(refreshed.user))
    resp = JSONResponse(status_code=200, content=envelope("Token refreshed successfully", data))
    request.app.state.tokens.set_auth_cookie(resp, refreshed.access_token)
    return _no_store(resp)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/change-password")
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
) -> dict:
    """Change the current user's password. Refresh tokens issued earlier stop working."""
    _workflow(request).change_password(current_user.id, body.old_password, body.new_password)
    return envelope("Password changed successfully")


@router.post("/auth/logout")
def logout(request: Request, current_user: User = Depends(get_current_user)) -> JSONResponse:
    """Clear the access-token cookie and end the browser session."""
    _workflow(request).logout(current_user.id)
    resp = JSONResponse(content=envelope("Logout successful"))
    resp.delete_cookie("access_token")
    return resp


@router.get("/auth/me")
def me(current_user: User = Depends(get_current_user)) -> dict:
    """Return the currently authenticated user."""
    return envelope("User retrieved successfully", UserResponse.from_user(current_user))


@router.get("/auth/profile")
def get_profile(request: Request, current_user: User = Depends(get_current_user)) -> dict:
    user = _workflow(request).get_profile(current_user.id)
    return envelope("Profile retrieved successfully", UserResponse.from_user(user))


@router.put("/auth/profile")
def update_profile(
    request: Request,
    body: ProfileUpdate,
    current_user: User = Depends(get_current_user),
) -> dict:
    """Update first/last name, phone, address, and bio. Other fields cannot be changed here."""
    user = _workflow(request).update_profile(current_user.id, body.model_dump(exclude_unset=True))
    return envelope("Profile updated successfully", UserResponse.from_user(user))
