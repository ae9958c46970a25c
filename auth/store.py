"""
auth/store.py -- SQLAlchemy Core persistence for accounts and one-time codes.

Pattern: Repository + Data Mapper. UserStore and OtpStore are the
repositories; _row_to_account / _row_to_code are the mappers. Orchestrator,
workflow and route code never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Credentials are opt-in. get_by_id / get_by_email / list_accounts never
  return password_hash or refresh_token_hash; only the *_with_credentials
  reads do.

  Emails are stripped and lowercased on every write and lookup, and the
  column carries a UNIQUE index, so two concurrent signups for the same
  address cannot both commit.

Atomicity:
  Every mutation is a single UPDATE/DELETE statement. Conditional writes
  (update_if_status, clear_refresh_token, OtpStore.delete) put the
  precondition in the WHERE clause and report success from the row count,
  so two racing callers can never both observe success.

  OtpStore.create deletes the previous codes and inserts the new one inside
  one transaction.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from sqlalchemy import Column, Index, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool

from auth.errors import ConflictError
from auth.models import Account, CodePurpose, OneTimeCode, Role, VerificationStatus
from auth.tokens import keyed_digest

_DEFAULT_DB_URL = "sqlite:///hostgate.db"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", String(32), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("email", String(320), nullable=False, unique=True),  # stored lowercased
    Column("avatar", Text),
    Column("password_hash", Text),
    Column("refresh_token_hash", String(64)),  # HMAC-SHA256 hex of the live refresh token
    Column("role", String(10), nullable=False, server_default="user"),
    Column("is_oauth_user", Integer, nullable=False, server_default="0"),
    Column("is_blocked", Integer, nullable=False, server_default="0"),
    Column("is_verified", Integer, nullable=False, server_default="0"),
    Column("verification_status", String(10)),  # hosts only
    Column("rejection_reason", Text),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("last_login", String(32)),
)

_codes = Table(
    "one_time_codes",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(320), nullable=False),
    Column("purpose", String(20), nullable=False),
    Column("code_hash", String(64), nullable=False),
    Column("created_at", String(32), nullable=False),
    Index("ix_one_time_codes_email_purpose", "email", "purpose"),
)

# Columns update() may touch. id, email, role and created_at are immutable.
_MUTABLE_COLUMNS = frozenset(
    {
        "name",
        "avatar",
        "password_hash",
        "refresh_token_hash",
        "is_oauth_user",
        "is_blocked",
        "is_verified",
        "verification_status",
        "rejection_reason",
        "last_login",
    }
)

_PUBLIC_COLUMNS = [c for c in _accounts.c if c.name not in ("password_hash", "refresh_token_hash")]


# ---------------------------------------------------------------------------
# Engine helpers
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block behind writers.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _make_engine(db_url: str) -> Engine:
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        # FastAPI runs sync handlers on a thread pool.
        connect_args["check_same_thread"] = False
    kwargs: dict = {}
    if "mode=memory" in db_url or db_url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection keeps an in-memory database alive across threads.
        kwargs["poolclass"] = StaticPool
    engine = create_engine(db_url, connect_args=connect_args, **kwargs)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    _metadata.create_all(engine)
    return engine


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(moment: datetime) -> str:
    # Fixed-width microsecond format keeps stored timestamps comparable as strings.
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: str) -> datetime:
    return datetime.fromisoformat(value)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _db_value(value):
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, (Role, VerificationStatus, CodePurpose)):
        return value.value
    return value


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for Account records.

    Usage:
        store = UserStore("sqlite:///hostgate.db")
        store.create(Account(name="Ada", email="ada@x.com", password_hash=...))
        account = store.get_by_email("ada@x.com")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL, clock: Callable[[], datetime] = _utcnow) -> None:
        self.engine: Engine = _make_engine(db_url)
        self._clock = clock

    def create(self, account: Account) -> Account:
        """Insert a new account and return it without credentials.

        Raises ConflictError if the email is taken, including when a
        concurrent request won the race on the UNIQUE index.
        """
        now = to_iso(self._clock())
        account.email = normalize_email(account.email)
        account.created_at = account.created_at or now
        account.updated_at = now
        values = {
            "id": account.id,
            "name": account.name,
            "email": account.email,
            "avatar": account.avatar,
            "password_hash": account.password_hash,
            "refresh_token_hash": account.refresh_token_hash,
            "role": _db_value(account.role),
            "is_oauth_user": _db_value(account.is_oauth_user),
            "is_blocked": _db_value(account.is_blocked),
            "is_verified": _db_value(account.is_verified),
            "verification_status": _db_value(account.verification_status),
            "rejection_reason": account.rejection_reason,
            "created_at": account.created_at,
            "updated_at": account.updated_at,
            "last_login": account.last_login,
        }
        try:
            with self.engine.begin() as conn:
                conn.execute(_accounts.insert().values(**values))
        except IntegrityError as exc:
            raise ConflictError("An account with this email already exists.") from exc
        return account.without_credentials()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _fetch_one(self, where, with_credentials: bool) -> Account | None:
        columns = list(_accounts.c) if with_credentials else _PUBLIC_COLUMNS
        with self.engine.connect() as conn:
            row = conn.execute(select(*columns).where(where)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_id(self, account_id: str) -> Account | None:
        return self._fetch_one(_accounts.c.id == account_id, with_credentials=False)

    def get_by_email(self, email: str) -> Account | None:
        return self._fetch_one(_accounts.c.email == normalize_email(email), with_credentials=False)

    def get_by_id_with_credentials(self, account_id: str) -> Account | None:
        return self._fetch_one(_accounts.c.id == account_id, with_credentials=True)

    def get_by_email_with_credentials(self, email: str) -> Account | None:
        return self._fetch_one(_accounts.c.email == normalize_email(email), with_credentials=True)

    def list_accounts(
        self,
        role: Role | None = None,
        verification_status: VerificationStatus | None = None,
    ) -> list[Account]:
        """Return credential-free accounts, oldest first, optionally filtered."""
        stmt = select(*_PUBLIC_COLUMNS).order_by(_accounts.c.created_at)
        if role is not None:
            stmt = stmt.where(_accounts.c.role == _db_value(role))
        if verification_status is not None:
            stmt = stmt.where(_accounts.c.verification_status == _db_value(verification_status))
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_account(r) for r in rows]

    def has_admin(self) -> bool:
        with self.engine.connect() as conn:
            count = conn.execute(
                select(func.count()).select_from(_accounts).where(_accounts.c.role == Role.ADMIN.value)
            ).scalar()
        return (count or 0) > 0

    def ping(self) -> bool:
        """Cheap connectivity probe for the health endpoint."""
        with self.engine.connect() as conn:
            conn.execute(select(1))
        return True

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _values(self, fields: dict) -> dict:
        unknown = set(fields) - _MUTABLE_COLUMNS
        if unknown:
            raise ValueError(f"Unknown or immutable account fields: {sorted(unknown)!r}")
        values = {k: _db_value(v) for k, v in fields.items()}
        values["updated_at"] = to_iso(self._clock())
        return values

    def update(self, account_id: str, **fields) -> bool:
        """Apply a partial update in one UPDATE statement.

        Returns True if a row was updated, False if account_id was not found.
        """
        values = self._values(fields)
        with self.engine.begin() as conn:
            result = conn.execute(_accounts.update().where(_accounts.c.id == account_id).values(**values))
        return result.rowcount > 0

    def update_if_status(self, account_id: str, expected_status: VerificationStatus, **fields) -> bool:
        """Compare-and-set on verification_status.

        Returns False when the account is missing or its status is no longer
        expected_status, i.e. another transition got there first.
        """
        values = self._values(fields)
        with self.engine.begin() as conn:
            result = conn.execute(
                _accounts.update()
                .where(
                    (_accounts.c.id == account_id)
                    & (_accounts.c.verification_status == _db_value(expected_status))
                )
                .values(**values)
            )
        return result.rowcount > 0

    def clear_refresh_token(self, account_id: str, expected_hash: str) -> bool:
        """Clear the stored fingerprint only if it is still expected_hash.

        A logout from a device holding an already-rotated token must not
        revoke the session that replaced it.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                _accounts.update()
                .where((_accounts.c.id == account_id) & (_accounts.c.refresh_token_hash == expected_hash))
                .values(refresh_token_hash=None, updated_at=to_iso(self._clock()))
            )
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# One-time codes
# ---------------------------------------------------------------------------


class OtpStore:
    """Repository for one-time codes.

    The store never judges expiry on read. Callers compare created_at against
    their own TTL; purge_expired() exists for table hygiene only.
    """

    def __init__(
        self,
        db_url: str = _DEFAULT_DB_URL,
        secret: str = "",
        code_length: int = 6,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if not secret:
            raise ValueError("OtpStore requires a secret for hashing codes.")
        self.engine: Engine = _make_engine(db_url)
        self._secret = secret
        self._length = code_length
        self._clock = clock

    def _hash(self, email: str, code: str) -> str:
        # Bind the digest to the email so equal codes for different accounts differ.
        return keyed_digest(self._secret, f"{email}:{code}")

    def _generate(self) -> str:
        return str(secrets.randbelow(10**self._length)).zfill(self._length)

    def create(self, email: str, purpose: CodePurpose = CodePurpose.LOGIN) -> str:
        """Replace every outstanding code for (email, purpose) with a new one.

        Returns the plaintext code; only its digest is persisted.
        """
        email = normalize_email(email)
        code = self._generate()
        with self.engine.begin() as conn:
            conn.execute(_codes.delete().where((_codes.c.email == email) & (_codes.c.purpose == purpose.value)))
            conn.execute(
                _codes.insert().values(
                    email=email,
                    purpose=purpose.value,
                    code_hash=self._hash(email, code),
                    created_at=to_iso(self._clock()),
                )
            )
        return code

    def find_by_email_and_code(
        self, email: str, code: str, purpose: CodePurpose = CodePurpose.LOGIN
    ) -> OneTimeCode | None:
        email = normalize_email(email)
        with self.engine.connect() as conn:
            row = conn.execute(
                _codes.select()
                .where(
                    (_codes.c.email == email)
                    & (_codes.c.purpose == purpose.value)
                    & (_codes.c.code_hash == self._hash(email, code.strip()))
                )
                .order_by(_codes.c.id.desc())
            ).fetchone()
        return _row_to_code(row) if row is not None else None

    def delete(self, code_id: int) -> bool:
        """Delete one code. True only for the caller that actually removed it."""
        with self.engine.begin() as conn:
            result = conn.execute(_codes.delete().where(_codes.c.id == code_id))
        return result.rowcount > 0

    def delete_all_for(self, email: str, purpose: CodePurpose | None = None) -> int:
        where = _codes.c.email == normalize_email(email)
        if purpose is not None:
            where = where & (_codes.c.purpose == purpose.value)
        with self.engine.begin() as conn:
            result = conn.execute(_codes.delete().where(where))
        return result.rowcount

    def purge_expired(self, purpose: CodePurpose, max_age_seconds: int) -> int:
        """Delete codes of one purpose older than max_age_seconds. Returns the count."""
        cutoff = to_iso(self._clock() - timedelta(seconds=max_age_seconds))
        with self.engine.begin() as conn:
            result = conn.execute(
                _codes.delete().where((_codes.c.purpose == purpose.value) & (_codes.c.created_at < cutoff))
            )
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    # Credential columns are absent from the public select.
    mapping = row._mapping
    status = mapping["verification_status"]
    return Account(
        id=mapping["id"],
        name=mapping["name"],
        email=mapping["email"],
        avatar=mapping["avatar"],
        role=Role(mapping["role"]),
        password_hash=mapping.get("password_hash"),
        refresh_token_hash=mapping.get("refresh_token_hash"),
        is_oauth_user=bool(mapping["is_oauth_user"]),
        is_blocked=bool(mapping["is_blocked"]),
        is_verified=bool(mapping["is_verified"]),
        verification_status=VerificationStatus(status) if status else None,
        rejection_reason=mapping["rejection_reason"],
        created_at=mapping["created_at"],
        updated_at=mapping["updated_at"],
        last_login=mapping["last_login"],
    )


def _row_to_code(row) -> OneTimeCode:
    return OneTimeCode(
        id=row.id,
        email=row.email,
        purpose=CodePurpose(row.purpose),
        code_hash=row.code_hash,
        created_at=row.created_at,
    )
