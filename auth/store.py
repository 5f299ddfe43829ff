"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts.

Pattern: Repository + Data Mapper. AccountStore is the repository;
_row_to_account is the mapper. Service and route code never touches SQL.

Uniqueness:
  username, email, password_reset_token and email_verification_token are
  unique among accounts whose deleted_at IS NULL. This is enforced by partial
  unique indexes (SQLite and PostgreSQL both support a WHERE clause on an
  index), never by a check-then-insert in Python -- two racing inserts with
  the same email both reach the database and the loser gets IntegrityError.
  NULL token columns never collide: both engines treat NULLs as distinct.

Soft delete:
  Every read goes through _active_accounts(), which applies the
  deleted_at IS NULL predicate. Every write that targets an existing account
  repeats the same predicate in its WHERE clause. No caller can reach a
  soft-deleted record through this class.

Errors:
  _translate_errors() is the only place SQLAlchemy exceptions are caught.
  IntegrityError becomes ConflictError; every other SQLAlchemyError becomes
  DatabaseError with the driver message kept for server-side logs only.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Index,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    select,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.models import Account, TokenKind
from core.errors import ConflictError, DatabaseError, ValidationError

logger = logging.getLogger("gatehouse.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("username", String(50), nullable=False),
    Column("email", String(254), nullable=False),
    Column("first_name", String(50)),
    Column("last_name", String(50)),
    Column("password_hash", Text, nullable=False),
    Column("email_verified", Boolean, nullable=False, server_default="0"),
    Column("password_reset_token", String(64)),
    Column("password_reset_token_expires_at", String(32)),
    Column("email_verification_token", String(64)),
    Column("email_verification_token_expires_at", String(32)),
    Column("deleted_at", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_ACTIVE = _accounts.c.deleted_at.is_(None)


def _unique_among_active(name: str, column: Column) -> Index:
    return Index(name, column, unique=True, sqlite_where=_ACTIVE, postgresql_where=_ACTIVE)


_unique_among_active("uq_accounts_username_active", _accounts.c.username)
_unique_among_active("uq_accounts_email_active", _accounts.c.email)
_unique_among_active("uq_accounts_reset_token_active", _accounts.c.password_reset_token)
_unique_among_active("uq_accounts_verification_token_active", _accounts.c.email_verification_token)
Index("ix_accounts_deleted_at", _accounts.c.deleted_at)

# token kind -> (token column, expiry column)
_TOKEN_COLUMNS: dict[TokenKind, tuple[str, str]] = {
    TokenKind.RESET_PASSWORD: ("password_reset_token", "password_reset_token_expires_at"),
    TokenKind.VERIFY_EMAIL: ("email_verification_token", "email_verification_token_expires_at"),
}

# Fields callers may change through update_account(). Token pairs and
# deleted_at have dedicated methods so their invariants cannot be bypassed.
_MUTABLE_FIELDS: frozenset[str] = frozenset(
    {"username", "email", "first_name", "last_name", "password_hash", "email_verified"}
)

_SORTABLE_FIELDS: frozenset[str] = frozenset(
    {"username", "email", "first_name", "last_name", "created_at", "updated_at"}
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block behind a writer.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _active_accounts():
    """SELECT over accounts that are not soft-deleted. All reads start here."""
    return _accounts.select().where(_ACTIVE)


@contextmanager
def _translate_errors(action: str) -> Iterator[None]:
    try:
        yield
    except IntegrityError as exc:
        logger.info("Unique constraint rejected %s: %s", action, exc.orig)
        raise ConflictError("An account with that username or email already exists.") from exc
    except SQLAlchemyError as exc:
        logger.error("Database failure during %s: %s", action, exc)
        raise DatabaseError(f"Database failure during {action}.") from exc


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account entities.

    Usage:
        store = AccountStore()
        account_id = store.create_account(Account(username="alice", email="alice@example.com",
                                                  password_hash=hash_password("Str0ngPass!")))
        account = store.get_by_id(account_id)
        store.close()
    """

    def __init__(self, db_url: str = "sqlite:///gatehouse.db") -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        with _translate_errors("schema creation"):
            _metadata.create_all(self.engine)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.exception("Database ping failed")
            return False
        return True

    # ------------------------------------------------------------------
    # Account queries
    # ------------------------------------------------------------------

    def create_account(self, account: Account) -> str:
        """Insert a new account and return its id.

        Raises ConflictError when an active account already holds the
        username or email, including when a concurrent insert won the race.
        """
        account_id = account.id or str(uuid.uuid4())
        now = _now_iso()
        with _translate_errors("account creation"), self.engine.connect() as conn:
            conn.execute(
                _accounts.insert().values(
                    id=account_id,
                    username=account.username,
                    email=account.email,
                    first_name=account.first_name,
                    last_name=account.last_name,
                    password_hash=account.password_hash,
                    email_verified=account.email_verified,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        return account_id

    def get_by_id(self, account_id: str) -> Account | None:
        with _translate_errors("account lookup"), self.engine.connect() as conn:
            row = conn.execute(_active_accounts().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_email(self, email: str) -> Account | None:
        """Look up an active account by exact (already normalized) email."""
        with _translate_errors("account lookup"), self.engine.connect() as conn:
            row = conn.execute(_active_accounts().where(_accounts.c.email == email)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_token(self, kind: TokenKind, token: str) -> Account | None:
        """Look up the active account currently holding a single-use token."""
        token_col, _ = _TOKEN_COLUMNS[kind]
        with _translate_errors("token lookup"), self.engine.connect() as conn:
            row = conn.execute(_active_accounts().where(_accounts.c[token_col] == token)).fetchone()
        return _row_to_account(row) if row is not None else None

    def list_accounts(self, limit: int = 20, skip: int = 0, sort: str | None = None) -> list[Account]:
        """Return active accounts, optionally sorted by "field" or "-field"."""
        query = _active_accounts()
        if sort:
            field = sort[1:] if sort.startswith("-") else sort
            if field not in _SORTABLE_FIELDS:
                raise ValidationError(f"Cannot sort by {field!r}.")
            column = _accounts.c[field]
            query = query.order_by(column.desc() if sort.startswith("-") else column.asc())
        else:
            query = query.order_by(_accounts.c.created_at.asc())
        query = query.limit(limit).offset(skip)
        with _translate_errors("account listing"), self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_account(r) for r in rows]

    def update_account(self, account_id: str, clear_tokens: tuple[TokenKind, ...] = (), **fields) -> bool:
        """Update mutable fields on an active account.

        Every kind in clear_tokens has its token and expiry columns nulled in
        the same statement. Returns True if a row was updated, False if the
        account is missing or soft-deleted. Raises ValueError for fields
        outside _MUTABLE_FIELDS and ConflictError when the new username or
        email is already taken.
        """
        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown account fields: {sorted(unknown)!r}")
        for kind in clear_tokens:
            token_col, expires_col = _TOKEN_COLUMNS[kind]
            fields[token_col] = None
            fields[expires_col] = None
        if not fields:
            return self.get_by_id(account_id) is not None
        with _translate_errors("account update"), self.engine.connect() as conn:
            result = conn.execute(
                _accounts.update()
                .where((_accounts.c.id == account_id) & _ACTIVE)
                .values(**fields, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def soft_delete(self, account_id: str) -> bool:
        """Stamp deleted_at on an active account. The row is never removed.

        Returns False if the account is missing or already deleted.
        """
        now = _now_iso()
        with _translate_errors("account deletion"), self.engine.connect() as conn:
            result = conn.execute(
                _accounts.update()
                .where((_accounts.c.id == account_id) & _ACTIVE)
                .values(deleted_at=now, updated_at=now)
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Single-use token slots
    # ------------------------------------------------------------------

    def set_token(self, account_id: str, kind: TokenKind, token: str, expires_at: str) -> bool:
        """Write a token and its expiry in one statement, replacing any previous pair.

        Returns False if the account is missing or soft-deleted.
        """
        token_col, expires_col = _TOKEN_COLUMNS[kind]
        with _translate_errors("token issuance"), self.engine.connect() as conn:
            result = conn.execute(
                _accounts.update()
                .where((_accounts.c.id == account_id) & _ACTIVE)
                .values({token_col: token, expires_col: expires_at, "updated_at": _now_iso()})
            )
            conn.commit()
        return result.rowcount > 0

    def clear_token(self, account_id: str, kind: TokenKind, token: str, **changes) -> bool:
        """Compare-and-clear a token pair, applying `changes` in the same UPDATE.

        The WHERE clause requires the stored token to still equal `token`, so
        of two concurrent consumers exactly one sees rowcount == 1. Returns
        False for the loser, or if the account is gone.
        """
        unknown = set(changes) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown account fields: {sorted(unknown)!r}")
        token_col, expires_col = _TOKEN_COLUMNS[kind]
        values = {token_col: None, expires_col: None, "updated_at": _now_iso(), **changes}
        with _translate_errors("token consumption"), self.engine.connect() as conn:
            result = conn.execute(
                _accounts.update()
                .where((_accounts.c.id == account_id) & (_accounts.c[token_col] == token) & _ACTIVE)
                .values(values)
            )
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        username=row.username,
        email=row.email,
        first_name=row.first_name,
        last_name=row.last_name,
        password_hash=row.password_hash,
        email_verified=bool(row.email_verified),
        password_reset_token=row.password_reset_token,
        password_reset_token_expires_at=row.password_reset_token_expires_at,
        email_verification_token=row.email_verification_token,
        email_verification_token_expires_at=row.email_verification_token_expires_at,
        deleted_at=row.deleted_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
