"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts.

Pattern: Repository + Data Mapper. AccountStore is the repository;
_row_to_account / _row_to_ephemeral are the mappers. Service and route code
never touches SQL directly.

Schema:
  accounts               -- identity rows, UNIQUE(email)
  account_profiles       -- 1:1 profile rows, FK ON DELETE CASCADE
  account_confirmations  -- selector/verifier rows, FK ON DELETE CASCADE
  account_remembered     -- selector/verifier rows, FK ON DELETE CASCADE
  account_resets         -- selector/verifier rows, FK ON DELETE CASCADE
  account_throttling     -- token buckets, optional FK ON DELETE CASCADE

Only confirmations have an application flow today (registration writes them,
AccountService.confirm_email() consumes them). The remembered, resets, and
throttling tables are part of the schema contract: they cascade with their
account and purge_expired() sweeps them, and the kind-keyed ephemeral methods
below work for every selector table.

Atomicity:
  create_account_with_profile() is the only multi-statement write (account,
  profile, and optionally the email confirmation record). It runs in
  engine.begin(), which commits on clean exit and rolls back and releases the
  connection on any exception. Every other mutation is a single statement.
  bump_force_logout() is "SET force_logout = force_logout + 1" in SQL, so
  concurrent bumps serialize on the row and none is lost.

Security:
  All queries use bound parameters. password_hash never leaves this module
  except inside an Account, whose to_public() omits it.

SQLite specifics:
  WAL journal mode and foreign_keys=ON are set per connection because SQLite
  PRAGMAs are not inherited by new pooled connections. Without foreign_keys
  the ON DELETE CASCADE clauses are silently ignored.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import time

from sqlalchemy import (
    Column,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    select,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.models import (
    PROFILE_FIELDS,
    Account,
    AccountStatus,
    EphemeralKind,
    EphemeralToken,
    Profile,
    Role,
)
from core.errors import DuplicateError, InternalError, NotFoundError

logger = logging.getLogger("userbase.auth.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(249), nullable=False, unique=True),
    Column("password_hash", String(255), nullable=False),
    Column("status", Integer, nullable=False, server_default="0"),
    Column("verified", Integer, nullable=False, server_default="0"),
    Column("resettable", Integer, nullable=False, server_default="1"),
    Column("registered", Integer, nullable=False, server_default="0"),
    Column("last_login", Integer),
    Column("force_logout", Integer, nullable=False, server_default="0"),
    Column("role", String(16), nullable=False, server_default=Role.USER.value),
)

_profiles = Table(
    "account_profiles",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("account_id", Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, unique=True),
    Column("first_name", String(50), nullable=False),
    Column("last_name", String(50), nullable=False),
    Column("address", String(255)),
    Column("city", String(100)),
    Column("state", String(100)),
    Column("country", String(100)),
    Column("postal_code", String(20)),
    Column("phone", String(20)),
)


def _selector_table(name: str, *extra: Column) -> Table:
    return Table(
        name,
        _metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("account_id", Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True),
        *extra,
        Column("selector", String(24), nullable=False, unique=True),
        Column("token", String(255), nullable=False),
        Column("expires", Integer, nullable=False, index=True),
    )


_ephemeral_tables: dict[EphemeralKind, Table] = {
    EphemeralKind.CONFIRMATION: _selector_table("account_confirmations", Column("email", String(249), nullable=False)),
    EphemeralKind.REMEMBER: _selector_table("account_remembered"),
    EphemeralKind.RESET: _selector_table("account_resets"),
}

_throttling = Table(
    "account_throttling",
    _metadata,
    Column("bucket", String(44), primary_key=True),
    Column("tokens", Float, nullable=False),
    Column("replenished_at", Integer, nullable=False),
    Column("expires_at", Integer, nullable=False, index=True),
    Column("account_id", Integer, ForeignKey("accounts.id", ondelete="CASCADE")),
)

# Joined projection used by every account read.
_account_columns = [_accounts] + [_profiles.c[name] for name in PROFILE_FIELDS]
_account_join = _accounts.outerjoin(_profiles, _profiles.c.account_id == _accounts.c.id)


# ---------------------------------------------------------------------------
# Connection pragmas
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now() -> int:
    return int(time.time())


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for accounts, profiles, and ephemeral credential records.

    Usage:
        store = AccountStore("sqlite:///userbase.db")
        account = store.create_account_with_profile(
            {"email": "a@b.com", "password_hash": digest},
            {"first_name": "A", "last_name": "B"},
        )
        store.bump_force_logout(account.id)
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_sqlite_pragmas)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Account creation (transactional)
    # ------------------------------------------------------------------

    def create_account_with_profile(
        self,
        account_fields: dict,
        profile_fields: dict,
        confirmation: EphemeralToken | None = None,
    ) -> Account:
        """Insert an account and its profile atomically and return the stored Account.

        account_fields: email and password_hash are required; status, verified,
            role, registered are optional.
        profile_fields: keys from PROFILE_FIELDS only.
        confirmation: optional email confirmation record written in the same
            transaction; its account_id and email are taken from the new row.

        Raises DuplicateError if the email is taken, InternalError if anything
        else fails. In both cases no account row survives.
        """
        unknown = set(profile_fields) - set(PROFILE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown profile fields: {sorted(unknown)!r}")

        email = normalize_email(account_fields["email"])
        status = account_fields.get("status", AccountStatus.INACTIVE)
        role = account_fields.get("role", Role.USER)
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    _accounts.insert().values(
                        email=email,
                        password_hash=account_fields["password_hash"],
                        status=int(status),
                        verified=1 if account_fields.get("verified") else 0,
                        registered=account_fields.get("registered") or _now(),
                        force_logout=0,
                        role=Role(role).value,
                    )
                )
                account_id = result.inserted_primary_key[0]
                conn.execute(_profiles.insert().values(account_id=account_id, **profile_fields))
                if confirmation is not None:
                    conn.execute(
                        _ephemeral_tables[EphemeralKind.CONFIRMATION]
                        .insert()
                        .values(
                            account_id=account_id,
                            email=email,
                            selector=confirmation.selector,
                            token=confirmation.token,
                            expires=confirmation.expires,
                        )
                    )
        except IntegrityError as exc:
            # The transaction is already rolled back. If the email now exists it
            # belongs to someone else, so this was a unique-constraint hit.
            if self.get_by_email(email) is not None:
                raise DuplicateError() from exc
            logger.exception("Account creation failed; transaction rolled back")
            raise InternalError("Failed to create user. Please try again.") from exc
        except SQLAlchemyError as exc:
            logger.exception("Account creation failed; transaction rolled back")
            raise InternalError("Failed to create user. Please try again.") from exc

        logger.info("Created account id=%s", account_id)
        created = self.get_by_id(account_id)
        if created is None:
            raise InternalError("User not found after write")
        return created

    # ------------------------------------------------------------------
    # Account queries
    # ------------------------------------------------------------------

    def get_by_id(self, account_id: int) -> Account | None:
        """Return the account joined with its profile, or None."""
        with self.engine.connect() as conn:
            row = conn.execute(
                select(*_account_columns).select_from(_account_join).where(_accounts.c.id == account_id)
            ).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_email(self, email: str) -> Account | None:
        """Look up an account by email (case-insensitive, whitespace-trimmed)."""
        with self.engine.connect() as conn:
            row = conn.execute(
                select(*_account_columns)
                .select_from(_account_join)
                .where(_accounts.c.email == normalize_email(email))
            ).fetchone()
        return _row_to_account(row) if row is not None else None

    def list_accounts(self, offset: int = 0, limit: int = 10) -> list[Account]:
        """Return one page of accounts ordered by id."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(*_account_columns)
                .select_from(_account_join)
                .order_by(_accounts.c.id)
                .offset(offset)
                .limit(limit)
            ).fetchall()
        return [_row_to_account(r) for r in rows]

    def count_accounts(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(_accounts)).scalar() or 0

    # ------------------------------------------------------------------
    # Account mutations (single statement each)
    # ------------------------------------------------------------------

    def update_profile(self, account_id: int, fields: dict) -> Account:
        """Update the given profile fields and return the fresh Account.

        Raises NotFoundError if the account has no profile row.
        """
        unknown = set(fields) - set(PROFILE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown profile fields: {sorted(unknown)!r}")
        with self.engine.begin() as conn:
            if fields:
                result = conn.execute(
                    _profiles.update().where(_profiles.c.account_id == account_id).values(**fields)
                )
                found = result.rowcount > 0
            else:
                found = (
                    conn.execute(select(_profiles.c.id).where(_profiles.c.account_id == account_id)).first()
                    is not None
                )
        if not found:
            raise NotFoundError("No user details found to update")
        updated = self.get_by_id(account_id)
        if updated is None:
            raise NotFoundError()
        return updated

    def _update_account(self, account_id: int, **values) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(_accounts.update().where(_accounts.c.id == account_id).values(**values))
        return result.rowcount > 0

    def set_status(self, account_id: int, status: AccountStatus) -> bool:
        return self._update_account(account_id, status=int(status))

    def set_verified(self, account_id: int, verified: bool) -> bool:
        return self._update_account(account_id, verified=1 if verified else 0)

    def set_role(self, account_id: int, role: Role) -> bool:
        return self._update_account(account_id, role=Role(role).value)

    def touch_last_login(self, account_id: int, now: int | None = None) -> bool:
        return self._update_account(account_id, last_login=now if now is not None else _now())

    def bump_force_logout(self, account_id: int) -> int | None:
        """Atomically increment force_logout. Returns the new value, or None if no such account."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _accounts.update()
                .where(_accounts.c.id == account_id)
                .values(force_logout=_accounts.c.force_logout + 1)
            )
            if result.rowcount == 0:
                return None
            return conn.execute(select(_accounts.c.force_logout).where(_accounts.c.id == account_id)).scalar()

    def delete_account(self, account_id: int) -> bool:
        """Delete an account; FK cascades remove its profile and ephemeral rows."""
        with self.engine.begin() as conn:
            result = conn.execute(_accounts.delete().where(_accounts.c.id == account_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Ephemeral records
    # ------------------------------------------------------------------

    def add_ephemeral_token(self, kind: EphemeralKind, token: EphemeralToken) -> int:
        """Insert a selector/verifier record and return its id."""
        table = _ephemeral_tables[EphemeralKind(kind)]
        values = {
            "account_id": token.account_id,
            "selector": token.selector,
            "token": token.token,
            "expires": token.expires,
        }
        if kind == EphemeralKind.CONFIRMATION:
            values["email"] = normalize_email(token.email or "")
        with self.engine.begin() as conn:
            result = conn.execute(table.insert().values(**values))
        return result.inserted_primary_key[0]

    def get_ephemeral_token(self, kind: EphemeralKind, selector: str) -> EphemeralToken | None:
        table = _ephemeral_tables[EphemeralKind(kind)]
        with self.engine.connect() as conn:
            row = conn.execute(table.select().where(table.c.selector == selector)).fetchone()
        return _row_to_ephemeral(row) if row is not None else None

    def delete_ephemeral_token(self, kind: EphemeralKind, selector: str) -> bool:
        table = _ephemeral_tables[EphemeralKind(kind)]
        with self.engine.begin() as conn:
            result = conn.execute(table.delete().where(table.c.selector == selector))
        return result.rowcount > 0

    def count_ephemeral(self, kind: EphemeralKind, account_id: int | None = None) -> int:
        table = _ephemeral_tables[EphemeralKind(kind)]
        query = select(func.count()).select_from(table)
        if account_id is not None:
            query = query.where(table.c.account_id == account_id)
        with self.engine.connect() as conn:
            return conn.execute(query).scalar() or 0

    def purge_expired(self, now: int | None = None) -> dict[str, int]:
        """Delete every ephemeral record whose expiry is before now.

        Plain DELETE ... WHERE expires < now per table: idempotent and safe
        to run concurrently with itself and with request traffic.
        Returns the number of rows removed per table.
        """
        cutoff = now if now is not None else _now()
        removed: dict[str, int] = {}
        with self.engine.begin() as conn:
            for table in _ephemeral_tables.values():
                removed[table.name] = conn.execute(table.delete().where(table.c.expires < cutoff)).rowcount
            removed[_throttling.name] = conn.execute(
                _throttling.delete().where(_throttling.c.expires_at < cutoff)
            ).rowcount
        total = sum(removed.values())
        if total:
            logger.info("Purged %d expired ephemeral records", total)
        return removed

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.exception("Database ping failed")
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    # first_name is NOT NULL in account_profiles, so None means no profile row.
    profile = None
    if row.first_name is not None:
        profile = Profile(**{name: getattr(row, name) for name in PROFILE_FIELDS})
    return Account(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        status=AccountStatus(row.status),
        verified=bool(row.verified),
        resettable=bool(row.resettable),
        registered=row.registered,
        last_login=row.last_login,
        force_logout=row.force_logout,
        role=Role(row.role),
        profile=profile,
    )


def _row_to_ephemeral(row) -> EphemeralToken:
    return EphemeralToken(
        id=row.id,
        account_id=row.account_id,
        selector=row.selector,
        token=row.token,
        expires=row.expires,
        email=getattr(row, "email", None),
    )
