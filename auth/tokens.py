"""
auth/tokens.py -- JWT, password hashing, and reset-token utilities.

Security design decisions:
  JWT: python-jose with HS256. Three token types, distinguished by the "type"
       claim so one can never be replayed as another:
         access          -- signed with SECRET_KEY, carries user_id/email/role.
         refresh         -- signed with REFRESH_SECRET_KEY, carries user_id and
                            the user's token_version at issue time.
         password_reset  -- signed with SECRET_KEY, short-lived "reset ticket"
                            returned by login when a reset is pending. It only
                            authorizes the first-login reset endpoint.
       Decoding returns None on any failure -- callers turn that into a typed
       error or a 401.

  Passwords: bcrypt directly (no passlib wrapper). The dummy hash enables
       timing equalization in AuthWorkflow.login() so response time does not
       reveal whether an email exists [C1].

  Reset tokens: secrets.token_hex(32) gives 256 bits of entropy. We store
       HMAC-SHA256(SECRET_KEY, raw_token) so the lookup is O(1) and a leaked
       database row cannot be replayed as a reset link.

Configuration is injected: TokenService(settings). Nothing here reads the
environment.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
from jose import JWTError, jwt

from auth.models import User
from core.config import Settings

_ALGORITHM = "HS256"

ACCESS = "access"
REFRESH = "refresh"
PASSWORD_RESET = "password_reset"


class TokenService:
    """Password hasher and token issuer bound to one Settings instance."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        # Computed once so the first login attempt is not measurably slower
        # than subsequent ones [C1].
        self.dummy_hash: str = self.hash_password("siwes_timing_dummy")

    # ------------------------------------------------------------------
    # Password hashing (bcrypt -- direct usage, no passlib wrapper)
    # ------------------------------------------------------------------

    def hash_password(self, plain: str) -> str:
        """Return a bcrypt hash of the given plaintext password.

        bcrypt rejects input longer than 72 bytes. The API layer caps new
        passwords at 72 characters from an ASCII-only set, so a validated
        password always fits.
        """
        salt = bcrypt.gensalt(rounds=self._settings.bcrypt_rounds)
        return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")

    @staticmethod
    def verify_password(plain: str, hashed: str) -> bool:
        """Return True if the plaintext password matches the bcrypt hash.

        A malformed stored hash or an over-long candidate counts as a mismatch.
        """
        try:
            return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            return False

    # ------------------------------------------------------------------
    # JWT encode
    # ------------------------------------------------------------------

    def _encode(self, claims: dict, expire_seconds: int, key: str) -> str:
        now = datetime.now(timezone.utc)
        payload = {**claims, "iat": now, "exp": now + timedelta(seconds=expire_seconds)}
        return jwt.encode(payload, key, algorithm=_ALGORITHM)

    def create_access_token(self, user: User) -> str:
        return self._encode(
            {"sub": user.email, "user_id": user.id, "role": user.role, "type": ACCESS},
            self._settings.access_token_expire_seconds,
            self._settings.secret_key,
        )

    def create_refresh_token(self, user: User) -> str:
        return self._encode(
            {"user_id": user.id, "ver": user.token_version, "type": REFRESH},
            self._settings.refresh_token_expire_seconds,
            self._settings.refresh_secret_key,
        )

    def create_reset_ticket(self, user: User) -> str:
        return self._encode(
            {"sub": user.email, "user_id": user.id, "type": PASSWORD_RESET},
            self._settings.reset_ticket_expire_seconds,
            self._settings.secret_key,
        )

    # ------------------------------------------------------------------
    # JWT decode
    # ------------------------------------------------------------------

    @staticmethod
    def _decode(token: str, key: str, expected_type: str) -> Optional[dict]:
        try:
            payload = jwt.decode(token, key, algorithms=[_ALGORITHM])
        except JWTError:
            return None
        if payload.get("type") != expected_type or "user_id" not in payload:
            return None
        return payload

    def decode_access_token(self, token: str) -> Optional[dict]:
        payload = self._decode(token, self._settings.secret_key, ACCESS)
        if payload is None or "role" not in payload:
            return None
        return payload

    def decode_refresh_token(self, token: str) -> Optional[dict]:
        payload = self._decode(token, self._settings.refresh_secret_key, REFRESH)
        if payload is None or "ver" not in payload:
            return None
        return payload

    def decode_reset_ticket(self, token: str) -> Optional[dict]:
        return self._decode(token, self._settings.secret_key, PASSWORD_RESET)

    # ------------------------------------------------------------------
    # Out-of-band reset tokens
    # ------------------------------------------------------------------

    @staticmethod
    def generate_reset_token() -> str:
        return secrets.token_hex(32)

    def hash_reset_token(self, raw_token: str) -> str:
        """Return HMAC-SHA256(SECRET_KEY, raw_token) as a hex string."""
        return hmac.new(
            self._settings.secret_key.encode(),
            raw_token.encode(),
            hashlib.sha256,
        ).hexdigest()

    # ------------------------------------------------------------------
    # Cookie helper
    # ------------------------------------------------------------------

    def set_auth_cookie(self, response, token: str) -> None:
        """Write the access token as an httpOnly cookie on the response.

        httponly=True: JS cannot read the cookie (XSS mitigation).
        samesite="lax": not sent on cross-site POST (CSRF mitigation).
        secure: only sent over HTTPS when SECURE_COOKIES=true.
        max_age: matches the JWT expiry so both expire together.
        """
        response.set_cookie(
            "access_token",
            value=token,
            httponly=True,
            samesite="lax",
            secure=self._settings.secure_cookies,
            max_age=self._settings.access_token_expire_seconds,
        )
