"""
auth/errors.py -- Typed failures raised by the auth workflow.

Every error carries the HTTP status and machine-readable code it maps to, so
api/main.py can render all of them with one exception handler. None of these
are retried: authentication failures are not transient.

Unexpected lower-layer failures (database down, hashing error) are NOT wrapped
in AuthError. They propagate to the generic 500 handler, which logs them and
returns a fixed message.
"""

from __future__ import annotations


class AuthError(Exception):
    status_code: int = 400
    code: str = "auth_error"
    default_message: str = "Authentication failed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidCredentials(AuthError):
    status_code = 401
    code = "invalid_credentials"
    default_message = "Invalid email or password"


class AccountDeactivated(AuthError):
    status_code = 403
    code = "account_deactivated"
    default_message = "Account has been deactivated"


class InvalidOrExpiredToken(AuthError):
    status_code = 400
    code = "invalid_token"
    default_message = "Invalid or expired reset token"


class InvalidRefreshToken(InvalidOrExpiredToken):
    status_code = 401
    default_message = "Invalid or expired refresh token"


class IncorrectPassword(AuthError):
    status_code = 401
    code = "incorrect_password"
    default_message = "Current password is incorrect"


class NotFound(AuthError):
    status_code = 404
    code = "not_found"
    default_message = "User not found"


class ResetNotPending(AuthError):
    status_code = 403
    code = "reset_not_pending"
    default_message = "Password has already been reset. Please login."


class PasswordReuse(AuthError):
    status_code = 400
    code = "password_reuse"
    default_message = "New password must be different from current password"
