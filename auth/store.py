"""
auth/store.py -- SQLAlchemy Core persistence layer for SIWES user accounts.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper. Workflow and route
code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Atomicity:
  Every workflow mutation is a single UPDATE statement. Password hash, reset
  flags, reset token, and token_version change together or not at all, without
  an explicit transaction or lock. token_version is incremented with a SQL
  expression (token_version + 1) so two concurrent bumps never collapse.

Email normalization:
  Emails are stripped and lowercased on insert and on lookup. UNIQUE(email)
  therefore enforces one credential record per mailbox.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError

from auth.models import User

logger = logging.getLogger("siwes.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("first_name", String(100), nullable=False, server_default=""),
    Column("last_name", String(100), nullable=False, server_default=""),
    Column("role", String(30), nullable=False, index=True),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("is_first_login", Integer, nullable=False, server_default="1"),
    Column("password_reset_required", Integer, nullable=False, server_default="1"),
    Column("reset_token_hash", String(64), index=True),  # HMAC-SHA256 hex
    Column("reset_token_expiry", String(32)),
    Column("token_version", Integer, nullable=False, server_default="0"),
    Column("phone", String(32)),
    Column("address", Text),
    Column("bio", String(500)),
    Column("last_login", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_BOOL_FIELDS = ("is_active", "is_first_login", "password_reset_required")


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore("sqlite:///siwes_auth.db")
        uid = store.create_user(User(email="a@b.edu", role="admin", hashed_password=h))
        user = store.get_by_email("A@B.edu")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except OperationalError:
            logger.warning("Database ping failed", exc_info=True)
            return False
        return True

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        Raises ValueError if hashed_password is empty.
        """
        if not user.hashed_password:
            raise ValueError("hashed_password must not be empty")
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=normalize_email(user.email),
                    hashed_password=user.hashed_password,
                    first_name=user.first_name,
                    last_name=user.last_name,
                    role=user.role,
                    is_active=1 if user.is_active else 0,
                    is_first_login=1 if user.is_first_login else 0,
                    password_reset_required=1 if user.password_reset_required else 0,
                    token_version=user.token_version,
                    phone=user.phone,
                    address=user.address,
                    bio=user.bio,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_email(self, email: str) -> Optional[User]:
        """Look up a user by email (case-insensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> Optional[User]:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_reset_token_hash(self, token_hash: str, now: str) -> Optional[User]:
        """Return the user holding this reset token if it has not expired.

        now is an ISO 8601 UTC timestamp. Both sides are written by _now_iso()
        style isoformat() calls, so lexical comparison equals time order.
        """
        with self.engine.connect() as conn:
            row = conn.execute(
                _users.select().where(
                    (_users.c.reset_token_hash == token_hash) & (_users.c.reset_token_expiry > now)
                )
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self, offset: int = 0, limit: int = 20, role: Optional[str] = None) -> list[User]:
        """Return one page of users ordered by email. Admin-only operation."""
        query = _users.select()
        if role is not None:
            query = query.where(_users.c.role == role)
        query = query.order_by(_users.c.email).offset(offset).limit(limit)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_user(r) for r in rows]

    def count_users(self, role: Optional[str] = None) -> int:
        query = select(func.count()).select_from(_users)
        if role is not None:
            query = query.where(_users.c.role == role)
        with self.engine.connect() as conn:
            result = conn.execute(query).scalar()
        return result or 0

    def count_active_admins(self) -> int:
        """Return the number of active admin users.

        Used by PATCH /users/{id} to prevent deactivating the last admin [M4].
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_users).where((_users.c.role == "admin") & (_users.c.is_active == 1))
            ).scalar()
        return result or 0

    def update_user(
        self,
        user_id: int,
        bump_token_version: bool = False,
        where_reset_token_hash: Optional[str] = None,
        **fields,
    ) -> bool:
        """Update fields on an existing user in a single UPDATE statement.

        Boolean fields are converted to int for SQLite. updated_at is stamped on
        every call. bump_token_version=True increments token_version in the
        same statement.

        where_reset_token_hash additionally requires the row to still hold that
        reset token, so a token is consumed by exactly one UPDATE.

        Returns True if a row was updated, False if no row matched.
        """
        for name in _BOOL_FIELDS:
            if name in fields:
                fields[name] = 1 if fields[name] else 0
        if "email" in fields:
            fields["email"] = normalize_email(fields["email"])
        if fields.get("hashed_password") == "":
            raise ValueError("hashed_password must not be empty")
        fields["updated_at"] = _now_iso()
        if bump_token_version:
            fields["token_version"] = _users.c.token_version + 1
        with self.engine.connect() as conn:
            query = _users.update().where(_users.c.id == user_id)
            if where_reset_token_hash is not None:
                query = query.where(_users.c.reset_token_hash == where_reset_token_hash)
            result = conn.execute(query.values(**fields))
            conn.commit()
        return result.rowcount > 0

    def update_last_login(self, user_id: int) -> None:
        """Stamp last_login and drop any pending out-of-band reset token."""
        with self.engine.connect() as conn:
            conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(last_login=_now_iso(), reset_token_hash=None, reset_token_expiry=None)
            )
            conn.commit()

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Connection with bounded retry
# ---------------------------------------------------------------------------


def connect_store(db_url: str, retries: int = 5, delay: float = 5.0) -> UserStore:
    """Construct a UserStore, retrying on OperationalError with a fixed delay.

    Makes up to retries + 1 attempts. The last OperationalError is re-raised
    when every attempt fails so the application refuses to start.
    """
    attempt = 0
    while True:
        try:
            store = UserStore(db_url)
        except OperationalError as exc:
            if attempt >= retries:
                logger.error("Max retries reached. Could not connect to database.")
                raise
            attempt += 1
            logger.warning(
                "Database connection failed (%s). Retrying in %.1fs (%d attempts remaining)",
                exc.__class__.__name__,
                delay,
                retries - attempt + 1,
            )
            time.sleep(delay)
            continue
        logger.info("Database connected")
        return store


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        hashed_password=row.hashed_password,
        first_name=row.first_name,
        last_name=row.last_name,
        role=row.role,
        is_active=bool(row.is_active),
        is_first_login=bool(row.is_first_login),
        password_reset_required=bool(row.password_reset_required),
        reset_token_hash=row.reset_token_hash,
        reset_token_expiry=row.reset_token_expiry,
        token_version=row.token_version,
        phone=row.phone,
        address=row.address,
        bio=row.bio,
        last_login=row.last_login,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
