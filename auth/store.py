"""
auth/store.py -- SQLAlchemy Core persistence layer for users and refresh tokens.

Pattern: Repository + Data Mapper. UserStore is the repository; the _row_to_*
functions are the mappers. Components never touch SQL directly.

Atomicity:
  Every state change on refresh_tokens is a single conditional UPDATE guarded
  by used_at IS NULL, and callers decide on the affected-row count. There is
  no read-then-write anywhere in this module. The store is the only
  synchronization point -- several server processes may share it, so no
  in-process locks are used.

  rotate_refresh_token() runs the claim and the insert of the replacement row
  in one transaction: either both are committed or neither is.

Timestamps are stored as ISO 8601 UTC strings with fixed microsecond precision
so string comparison in SQL matches chronological order.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import (
    Column,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    or_,
    select,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import RefreshToken, User, new_id

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'authcore.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_users = Table(
    "users",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), unique=True),  # NULL when registered by phone
    Column("phone", String(32), unique=True),  # NULL when registered by email
    Column("password_hash", Text),
    Column("name", String(100), nullable=False),
    Column("role", String(20), nullable=False, server_default="user"),
    Column("auth_method", String(20), nullable=False, server_default="email"),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("email_verified", Integer, nullable=False, server_default="0"),
    Column("phone_verified", Integer, nullable=False, server_default="0"),
    Column("last_login_at", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_refresh_tokens = Table(
    "refresh_tokens",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("users.id"), nullable=False),
    Column("token", String(128), nullable=False, unique=True),
    Column("expires_at", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("used_at", String(32)),  # NULL = still valid for rotation
    Index("ix_refresh_tokens_user_used", "user_id", "used_at"),
)


# ---------------------------------------------------------------------------
# SQLite connection setup
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block on the claim writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User and RefreshToken entities.

    Usage:
        store = UserStore("sqlite:///:memory:")
        user = store.create_user(User(name="Anna", email="anna@example.com", password_hash=h), now)
        store.insert_refresh_token(row)
        store.rotate_refresh_token(row.id, replacement, now)
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            connect_args["timeout"] = 15
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def create_user(self, user: User, now: datetime) -> User:
        """Insert a new user and return the stored record (id and created_at filled in).

        Raises sqlalchemy.exc.IntegrityError if the email or phone is taken.
        """
        stamp = _iso(now)
        stored = User(
            id=new_id(),
            name=user.name,
            role=user.role,
            email=user.email,
            phone=user.phone,
            password_hash=user.password_hash,
            auth_method=user.auth_method,
            is_active=user.is_active,
            email_verified=user.email_verified,
            phone_verified=user.phone_verified,
            created_at=stamp,
        )
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    id=stored.id,
                    email=stored.email,
                    phone=stored.phone,
                    password_hash=stored.password_hash,
                    name=stored.name,
                    role=stored.role,
                    auth_method=stored.auth_method,
                    is_active=1 if stored.is_active else 0,
                    email_verified=1 if stored.email_verified else 0,
                    phone_verified=1 if stored.phone_verified else 0,
                    created_at=stamp,
                    updated_at=stamp,
                )
            )
            conn.commit()
        return stored

    def get_by_identifier(self, email: str | None, phone: str | None) -> User | None:
        """Look up a user whose email OR phone matches. Inactive users are returned too.

        A None argument is left out of the match entirely (comparing with
        NULL would match every user without that identifier).
        """
        clauses = []
        if email:
            clauses.append(_users.c.email == email)
        if phone:
            clauses.append(_users.c.phone == phone)
        if not clauses:
            return None
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(or_(*clauses))).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def email_taken(self, email: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(select(_users.c.id).where(_users.c.email == email)).fetchone()
        return row is not None

    def phone_taken(self, phone: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(select(_users.c.id).where(_users.c.phone == phone)).fetchone()
        return row is not None

    def update_last_login(self, user_id: str, now: datetime) -> None:
        with self.engine.connect() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login_at=_iso(now)))
            conn.commit()

    def update_password_hash(self, user_id: str, password_hash: str, now: datetime) -> None:
        with self.engine.connect() as conn:
            conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(password_hash=password_hash, updated_at=_iso(now))
            )
            conn.commit()

    def set_active(self, user_id: str, is_active: bool, now: datetime) -> bool:
        """Flip the is_active gate. Returns False if user_id was not found."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(is_active=1 if is_active else 0, updated_at=_iso(now))
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Refresh token queries
    # ------------------------------------------------------------------

    def insert_refresh_token(self, token: RefreshToken) -> None:
        """Durably write one refresh token row. Raises on any storage failure."""
        with self.engine.connect() as conn:
            conn.execute(_refresh_tokens.insert().values(**_refresh_token_values(token)))
            conn.commit()

    def get_refresh_token(self, value: str) -> tuple[RefreshToken, User] | None:
        """Return the token row joined with its owner, or None if no row matches."""
        columns = [c.label(f"rt_{c.name}") for c in _refresh_tokens.c] + [
            c.label(f"u_{c.name}") for c in _users.c
        ]
        query = (
            select(*columns)
            .select_from(_refresh_tokens.join(_users, _refresh_tokens.c.user_id == _users.c.id))
            .where(_refresh_tokens.c.token == value)
        )
        with self.engine.connect() as conn:
            row = conn.execute(query).fetchone()
        if row is None:
            return None
        return _row_to_refresh_token(row, prefix="rt_"), _row_to_user(row, prefix="u_")

    def rotate_refresh_token(self, old_id: str, replacement: RefreshToken, now: datetime) -> bool:
        """Claim old_id and persist its replacement in a single transaction.

        The claim is UPDATE ... WHERE id = :old_id AND used_at IS NULL. When it
        affects no row, someone else consumed the token first: nothing is
        written and False is returned. Otherwise the replacement row is
        inserted and both writes commit together.
        """
        with self.engine.begin() as conn:
            claimed = conn.execute(
                _refresh_tokens.update()
                .where((_refresh_tokens.c.id == old_id) & (_refresh_tokens.c.used_at.is_(None)))
                .values(used_at=_iso(now))
            )
            if claimed.rowcount != 1:
                return False
            conn.execute(_refresh_tokens.insert().values(**_refresh_token_values(replacement)))
        return True

    def consume_refresh_token(self, value: str, now: datetime) -> bool:
        """Mark a single token as used if it is not already. Returns True if it changed."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _refresh_tokens.update()
                .where((_refresh_tokens.c.token == value) & (_refresh_tokens.c.used_at.is_(None)))
                .values(used_at=_iso(now))
            )
            conn.commit()
        return result.rowcount > 0

    def consume_all_refresh_tokens(self, user_id: str, now: datetime) -> int:
        """Mark every Active token of the user as used in one statement. Returns the count."""
        stamp = _iso(now)
        with self.engine.connect() as conn:
            result = conn.execute(
                _refresh_tokens.update()
                .where(
                    (_refresh_tokens.c.user_id == user_id)
                    & (_refresh_tokens.c.used_at.is_(None))
                    & (_refresh_tokens.c.expires_at > stamp)
                )
                .values(used_at=stamp)
            )
            conn.commit()
        return result.rowcount

    def count_active_refresh_tokens(self, user_id: str, now: datetime) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count())
                .select_from(_refresh_tokens)
                .where(
                    (_refresh_tokens.c.user_id == user_id)
                    & (_refresh_tokens.c.used_at.is_(None))
                    & (_refresh_tokens.c.expires_at > _iso(now))
                )
            ).scalar()
        return result or 0

    def list_refresh_tokens(self, user_id: str) -> list[RefreshToken]:
        """Return every token row ever issued to the user, oldest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _refresh_tokens.select()
                .where(_refresh_tokens.c.user_id == user_id)
                .order_by(_refresh_tokens.c.created_at)
            ).fetchall()
        return [_row_to_refresh_token(r) for r in rows]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    def close(self) -> None:
        self.engine.dispose()


def is_unique_violation(exc: IntegrityError) -> bool:
    message = str(exc.orig).lower()
    return "unique" in message or "duplicate" in message


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _refresh_token_values(token: RefreshToken) -> dict:
    return {
        "id": token.id,
        "user_id": token.user_id,
        "token": token.token,
        "expires_at": _iso(token.expires_at),
        "created_at": _iso(token.created_at),
        "used_at": _iso(token.used_at) if token.used_at is not None else None,
    }


def _row_to_user(row, prefix: str = "") -> User:
    m = row._mapping
    return User(
        id=m[f"{prefix}id"],
        email=m[f"{prefix}email"],
        phone=m[f"{prefix}phone"],
        password_hash=m[f"{prefix}password_hash"],
        name=m[f"{prefix}name"],
        role=m[f"{prefix}role"],
        auth_method=m[f"{prefix}auth_method"],
        is_active=bool(m[f"{prefix}is_active"]),
        email_verified=bool(m[f"{prefix}email_verified"]),
        phone_verified=bool(m[f"{prefix}phone_verified"]),
        last_login_at=m[f"{prefix}last_login_at"],
        created_at=m[f"{prefix}created_at"],
    )


def _row_to_refresh_token(row, prefix: str = "") -> RefreshToken:
    m = row._mapping
    return RefreshToken(
        id=m[f"{prefix}id"],
        user_id=m[f"{prefix}user_id"],
        token=m[f"{prefix}token"],
        expires_at=_parse(m[f"{prefix}expires_at"]),
        created_at=_parse(m[f"{prefix}created_at"]),
        used_at=_parse(m[f"{prefix}used_at"]),
    )
