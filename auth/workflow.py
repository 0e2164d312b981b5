"""
auth/workflow.py -- Login, password reset, and password change orchestration.

AuthWorkflow is the only place that decides who gets a session. It combines
three collaborators:
  UserStore     -- credential records (auth/store.py)
  TokenService  -- bcrypt hashing and JWT issuing (auth/tokens.py)
  Settings      -- expiry windows, injected explicitly (core/config.py)

Per-user reset state:

    PendingFirstLoginReset --reset_password_first_login--> Active
    Active --request_password_reset--> PendingTokenReset
    PendingTokenReset --reset_password_with_token--> Active
    PendingTokenReset --token expiry--> Active   (token stops matching)

login() returns a sum type: Session for a normal account, or
PasswordResetRequired while is_first_login / password_reset_required is set.
A pending-reset user never receives a refresh token from login().

Every password mutation increments token_version in the same UPDATE that
writes the new hash, so refresh tokens minted under the old password stop
working immediately.

Failures raise the typed errors in auth/errors.py. Nothing is retried.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from auth.errors import (
    AccountDeactivated,
    IncorrectPassword,
    InvalidCredentials,
    InvalidOrExpiredToken,
    InvalidRefreshToken,
    NotFound,
    PasswordReuse,
    ResetNotPending,
)
from auth.models import User
from auth.store import UserStore
from auth.tokens import TokenService
from core.config import Settings

logger = logging.getLogger("siwes.auth")

# Profile fields a user may edit on their own account.
PROFILE_FIELDS = ("first_name", "last_name", "phone", "address", "bio")


@dataclass(frozen=True)
class Session:
    access_token: str
    refresh_token: str
    user: User


@dataclass(frozen=True)
class PasswordResetRequired:
    user_id: int
    email: str
    is_first_login: bool
    temp_token: str


LoginResult = Union[Session, PasswordResetRequired]


@dataclass(frozen=True)
class RefreshedAccess:
    access_token: str
    user: User


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuthWorkflow:
    def __init__(self, store: UserStore, tokens: TokenService, settings: Settings) -> None:
        self.store = store
        self.tokens = tokens
        self.settings = settings

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_user(self, user_id: int) -> User:
        user = self.store.get_by_id(user_id)
        if user is None:
            raise NotFound()
        return user

    def _issue_session(self, user: User) -> Session:
        return Session(
            access_token=self.tokens.create_access_token(user),
            refresh_token=self.tokens.create_refresh_token(user),
            user=user,
        )

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> LoginResult:
        """Authenticate by email and password.

        Always runs bcrypt, even for unknown emails, so response time does not
        reveal which addresses have accounts [C1]. The password is checked
        before the active flag: a wrong password yields InvalidCredentials
        whatever the account state.
        """
        user = self.store.get_by_email(email)
        if user is None:
            self.tokens.verify_password(password, self.tokens.dummy_hash)
            logger.warning("Login failed: unknown email")
            raise InvalidCredentials()
        if not self.tokens.verify_password(password, user.hashed_password):
            logger.warning("Login failed: bad password for user_id=%s", user.id)
            raise InvalidCredentials()
        if not user.is_active:
            logger.warning("Login refused: deactivated user_id=%s", user.id)
            raise AccountDeactivated()

        self.store.update_last_login(user.id)
        user = self._require_user(user.id)

        if user.needs_password_reset:
            logger.info("Login requires password reset: user_id=%s", user.id)
            return PasswordResetRequired(
                user_id=user.id,
                email=user.email,
                is_first_login=user.is_first_login,
                temp_token=self.tokens.create_reset_ticket(user),
            )

        logger.info("User logged in: user_id=%s role=%s", user.id, user.role)
        return self._issue_session(user)

    # ------------------------------------------------------------------
    # First-login reset
    # ------------------------------------------------------------------

    def reset_password_first_login(self, user_id: int, new_password: str) -> Session:
        """Set the user's own password and leave the pending-reset state."""
        user = self._require_user(user_id)
        if not user.is_active:
            raise AccountDeactivated()
        if not user.needs_password_reset:
            raise ResetNotPending()

        self.store.update_user(
            user_id,
            bump_token_version=True,
            hashed_password=self.tokens.hash_password(new_password),
            is_first_login=False,
            password_reset_required=False,
            reset_token_hash=None,
            reset_token_expiry=None,
        )
        logger.info("User reset password on first login: user_id=%s", user_id)
        return self._issue_session(self._require_user(user_id))

    # ------------------------------------------------------------------
    # Out-of-band (emailed) reset
    # ------------------------------------------------------------------

    def request_password_reset(self, email: str) -> Optional[tuple[User, str]]:
        """Issue a reset token for an active account.

        Returns (user, raw_token) so the caller can deliver the link, or None
        when no active account matches. Callers must not reveal which.
        """
        user = self.store.get_by_email(email)
        if user is None or not user.is_active:
            logger.info("Password reset requested for unknown or inactive email")
            return None

        raw_token = self.tokens.generate_reset_token()
        expiry = _utcnow() + timedelta(seconds=self.settings.reset_token_expire_seconds)
        self.store.update_user(
            user.id,
            reset_token_hash=self.tokens.hash_reset_token(raw_token),
            reset_token_expiry=expiry.isoformat(timespec="microseconds"),
        )
        logger.info("Password reset token issued: user_id=%s", user.id)
        return user, raw_token

    def reset_password_with_token(self, token: str, new_password: str) -> str:
        """Consume a reset token and set a new password. Returns the user's email."""
        if not token:
            raise InvalidOrExpiredToken()
        now = _utcnow().isoformat(timespec="microseconds")
        token_hash = self.tokens.hash_reset_token(token)
        user = self.store.get_by_reset_token_hash(token_hash, now)
        if user is None:
            logger.warning("Password reset with invalid or expired token")
            raise InvalidOrExpiredToken()

        consumed = self.store.update_user(
            user.id,
            bump_token_version=True,
            where_reset_token_hash=token_hash,
            hashed_password=self.tokens.hash_password(new_password),
            reset_token_hash=None,
            reset_token_expiry=None,
        )
        if not consumed:
            # Another request used the token between lookup and update.
            logger.warning("Password reset token already consumed: user_id=%s", user.id)
            raise InvalidOrExpiredToken()
        logger.info("User reset password with token: user_id=%s", user.id)
        return user.email

    # ------------------------------------------------------------------
    # Password change
    # ------------------------------------------------------------------

    def change_password(self, user_id: int, old_password: str, new_password: str) -> None:
        """Replace the password of an authenticated user.

        First-login and reset-required flags are left untouched.
        """
        user = self._require_user(user_id)
        if not self.tokens.verify_password(old_password, user.hashed_password):
            logger.warning("Password change rejected: incorrect current password for user_id=%s", user_id)
            raise IncorrectPassword()
        if self.tokens.verify_password(new_password, user.hashed_password):
            raise PasswordReuse()

        self.store.update_user(
            user_id,
            bump_token_version=True,
            hashed_password=self.tokens.hash_password(new_password),
        )
        logger.info("User changed password: user_id=%s", user_id)

    # ------------------------------------------------------------------
    # Session glue
    # ------------------------------------------------------------------

    def refresh_session(self, refresh_token: str) -> RefreshedAccess:
        """Mint a new access token from a refresh token.

        The token's ver claim must equal the user's current token_version;
        any password mutation since issue invalidates it.
        """
        payload = self.tokens.decode_refresh_token(refresh_token)
        if payload is None:
            raise InvalidRefreshToken()
        user = self.store.get_by_id(payload["user_id"])
        if user is None or not user.is_active:
            raise InvalidRefreshToken("User not found or inactive")
        if payload["ver"] != user.token_version:
            logger.warning("Refresh token revoked by password change: user_id=%s", user.id)
            raise InvalidRefreshToken()
        if user.needs_password_reset:
            raise InvalidRefreshToken("Password reset required")
        return RefreshedAccess(access_token=self.tokens.create_access_token(user), user=user)

    def logout(self, user_id: int) -> None:
        # Refresh tokens stay valid until expiry or the next password change.
        logger.info("User logged out: user_id=%s", user_id)

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def get_profile(self, user_id: int) -> User:
        return self._require_user(user_id)

    def update_profile(self, user_id: int, fields: dict) -> User:
        """Update the editable profile fields. Other keys are ignored.

        A None value clears an optional field (phone, address, bio).
        """
        self._require_user(user_id)
        updates = {k: v for k, v in fields.items() if k in PROFILE_FIELDS}
        if updates:
            self.store.update_user(user_id, **updates)
            logger.info("User updated profile: user_id=%s fields=%s", user_id, sorted(updates))
        return self._require_user(user_id)
