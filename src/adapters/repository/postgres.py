"""
PostgreSQL repository adapter - Implements RegistrationRepository protocol.

This module provides the PostgreSQL implementation of the domain's
repository and fee-rate ports using psycopg3 with raw SQL.

Transaction Design:
-------------------
Every state-machine mutation goes through modify(), which runs on a single
pooled connection:

1. **SELECT ... FOR UPDATE OF r**: Locks the registration row so concurrent
   updates of the same registration serialize.

2. **mutate(current)**: The domain transition runs while the lock is held,
   including the additional-fee recomputation when the roster changes.

3. **UPDATE of the touched columns**: Fields and the fee snapshot are
   written by one statement, then committed.

If the transition raises, the pool rolls the transaction back and nothing
is written.

Storage Mapping:
----------------
- The company-details ReviewState is persisted as the three boolean
  columns company_details_locked/approved/rejected.
- The shared list (legacy strings or approval entries) lives in the
  shared_with_emails JSONB column and is resolved into its tagged variant
  when the row is read.
- Owner name and email are joined from the users table and never written.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool, PoolTimeout

from src.domain.exceptions import CollaboratorUnavailable
from src.domain.models import (
    Director,
    FeeBreakdown,
    FeeRateConfig,
    Registration,
    Shareholder,
    StateChange,
    parse_shared_access,
    review_from_flags,
)
from src.domain.ports import Step

logger = logging.getLogger(__name__)

# Registration attributes stored in a column of the same name.
_PLAIN_COLUMNS = (
    "company_name",
    "company_name_english",
    "company_name_sinhala",
    "contact_person_name",
    "contact_person_email",
    "contact_person_phone",
    "selected_package",
    "payment_method",
    "company_entity",
    "is_foreign_owned",
    "business_email",
    "business_contact_number",
    "company_activities",
    "status",
    "payment_approved",
    "details_approved",
    "documents_approved",
    "documents_published",
    "documents_acknowledged",
    "balance_payment_approved",
    "register_start_date",
    "expire_days",
    "expire_date",
    "is_expired",
    "expiry_notification_sent_at",
    "pinned",
    "noted",
    "secretary_records_noted_at",
    "created_at",
    "updated_at",
)

# Joined, read-only attributes.
_READ_ONLY = frozenset({"id", "owner_name", "owner_email"})

_SELECT_REGISTRATION = """
    SELECT r.*, u.name AS owner_name, u.email AS owner_email
    FROM registrations r
    LEFT JOIN users u ON u.id = r.user_id
"""

# Matches both legacy string entries and {email, status} entries.
_SHARED_EMAIL_MATCH = """
    EXISTS (
        SELECT 1 FROM jsonb_array_elements(r.shared_with_emails) AS entry
        WHERE lower(
            CASE WHEN jsonb_typeof(entry) = 'string' THEN entry #>> '{}'
                 ELSE entry ->> 'email' END
        ) = %(shared_email)s
    )
"""


def _column_values(registration: Registration, fields: Iterable[str]) -> dict[str, Any]:
    """Map Registration attribute names to column values."""
    columns: dict[str, Any] = {}
    for name in fields:
        if name in _READ_ONLY:
            continue
        if name in _PLAIN_COLUMNS:
            columns[name] = getattr(registration, name)
        elif name == "owner_user_id":
            columns["user_id"] = registration.owner_user_id
        elif name == "current_step":
            columns["current_step"] = registration.current_step.value
        elif name == "company_details_review":
            columns["company_details_locked"] = registration.company_details_locked
            columns["company_details_approved"] = registration.company_details_approved
            columns["company_details_rejected"] = registration.company_details_rejected
        elif name == "shareholders":
            columns["shareholders"] = Jsonb([m.to_dict() for m in registration.shareholders])
        elif name == "directors":
            columns["directors"] = Jsonb([m.to_dict() for m in registration.directors])
        elif name == "additional_fees":
            fees = registration.additional_fees
            columns["additional_fees"] = Jsonb(fees.to_dict()) if fees is not None else None
        elif name == "documents":
            columns["documents"] = Jsonb(registration.documents)
        elif name == "shared_with":
            columns["shared_with_emails"] = Jsonb(registration.shared_with.to_json())
        else:
            raise ValueError(f"Unknown registration field: {name}")
    return columns


def _all_fields() -> list[str]:
    return [
        "owner_user_id",
        "current_step",
        "company_details_review",
        "shareholders",
        "directors",
        "additional_fees",
        "documents",
        "shared_with",
        *_PLAIN_COLUMNS,
    ]


def _from_row(row: dict[str, Any]) -> Registration:
    """Build a Registration from a dict_row result."""
    plain = {name: row.get(name) for name in _PLAIN_COLUMNS}
    for flag in (
        "payment_approved",
        "details_approved",
        "documents_approved",
        "documents_published",
        "documents_acknowledged",
        "balance_payment_approved",
        "is_expired",
        "pinned",
        "noted",
    ):
        plain[flag] = bool(plain[flag])

    try:
        step = Step.parse(row.get("current_step") or Step.CONTACT_DETAILS.value)
    except ValueError:
        logger.warning("Unknown step %r on registration %s", row.get("current_step"), row["id"])
        step = Step.CONTACT_DETAILS

    fees = row.get("additional_fees")
    return Registration(
        id=row["id"],
        owner_user_id=row.get("user_id"),
        owner_name=row.get("owner_name"),
        owner_email=row.get("owner_email"),
        current_step=step,
        company_details_review=review_from_flags(
            bool(row.get("company_details_locked")),
            bool(row.get("company_details_approved")),
            bool(row.get("company_details_rejected")),
        ),
        shareholders=[Shareholder.from_dict(m) for m in row.get("shareholders") or []],
        directors=[Director.from_dict(m) for m in row.get("directors") or []],
        additional_fees=FeeBreakdown.from_dict(fees) if fees else None,
        documents=dict(row.get("documents") or {}),
        shared_with=parse_shared_access(row.get("shared_with_emails")),
        **plain,
    )


class PostgresRegistrationRepository:
    """
    Implements RegistrationRepository protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries; column names come from a fixed
    mapping and are quoted with psycopg.sql.Identifier.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """
        Initialize repository with connection pool.

        Args:
            pool: psycopg3 ConnectionPool for database connections
        """
        self._pool = pool

    @contextmanager
    def _connection(self) -> Iterator[psycopg.Connection]:
        try:
            with self._pool.connection() as conn:
                yield conn
        except (psycopg.OperationalError, PoolTimeout) as exc:
            logger.error("Registration store unavailable: %s", exc)
            raise CollaboratorUnavailable(f"Registration store unavailable: {exc}") from exc

    def get(self, registration_id: str) -> Registration | None:
        query = _SELECT_REGISTRATION + " WHERE r.id = %s"
        with self._connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(query, (registration_id,))
            row = cursor.fetchone()
        return _from_row(row) if row is not None else None

    def list(
        self, owner_user_id: str | None = None, shared_email: str | None = None
    ) -> list[Registration]:
        """
        List registrations, newest first.

        With no filter every registration is returned. Otherwise rows owned
        by owner_user_id or naming shared_email in their shared list
        (any status) are returned; approval is checked by the caller.
        """
        params: dict[str, Any] = {}
        conditions = []
        if owner_user_id:
            conditions.append("r.user_id = %(owner_user_id)s")
            params["owner_user_id"] = owner_user_id
        if shared_email:
            conditions.append(_SHARED_EMAIL_MATCH)
            params["shared_email"] = shared_email.strip().lower()

        query = _SELECT_REGISTRATION
        if conditions:
            query += " WHERE " + " OR ".join(conditions)
        elif owner_user_id is not None or shared_email is not None:
            # Empty identity: nothing can match.
            return []
        query += " ORDER BY r.pinned DESC, r.created_at DESC"

        with self._connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(query, params)
            rows = cursor.fetchall()
        return [_from_row(row) for row in rows]

    def list_expiry_candidates(self) -> list[Registration]:
        """Registrations that are flagged expired or carry an expiry date."""
        query = (
            _SELECT_REGISTRATION
            + " WHERE r.is_expired OR r.expire_date IS NOT NULL ORDER BY r.expire_date"
        )
        with self._connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(query)
            rows = cursor.fetchall()
        return [_from_row(row) for row in rows]

    def create(self, registration: Registration) -> bool:
        """
        Insert a new registration.

        Uses INSERT ... ON CONFLICT (id) DO NOTHING so a duplicate id is a
        no-op rather than an error.

        Returns:
            True if inserted, False if the id already existed
        """
        columns = {"id": registration.id, **_column_values(registration, _all_fields())}
        columns = {name: value for name, value in columns.items() if value is not None}
        query = sql.SQL(
            "INSERT INTO registrations ({columns}) VALUES ({values}) ON CONFLICT (id) DO NOTHING"
        ).format(
            columns=sql.SQL(", ").join(map(sql.Identifier, columns)),
            values=sql.SQL(", ").join(sql.Placeholder(name) for name in columns),
        )
        with self._connection() as conn, conn.cursor() as cursor:
            cursor.execute(query, columns)
            conn.commit()
            return cursor.rowcount == 1

    def update(self, registration_id: str, fields: dict[str, Any]) -> int:
        """
        Write the given attributes without reading the row first.

        Args:
            registration_id: Registration to update
            fields: Registration attribute names mapped to new values

        Returns:
            Number of rows updated (0 if the id is unknown)
        """
        if not fields:
            return 0
        scratch = Registration(id=registration_id)
        for name, value in fields.items():
            setattr(scratch, name, value)
        columns = _column_values(scratch, fields)

        with self._connection() as conn, conn.cursor() as cursor:
            self._execute_update(cursor, registration_id, columns)
            conn.commit()
            return cursor.rowcount

    def modify(
        self, registration_id: str, mutate: Callable[[Registration], StateChange]
    ) -> StateChange | None:
        """
        Read-transition-write one registration under a row lock.

        Returns:
            The StateChange produced by mutate, or None if the id is unknown
        """
        query = _SELECT_REGISTRATION + " WHERE r.id = %s FOR UPDATE OF r"

        with self._connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(query, (registration_id,))
            row = cursor.fetchone()
            if row is None:
                conn.commit()
                return None

            change = mutate(_from_row(row))
            columns = _column_values(change.after, change.changed)
            if columns:
                self._execute_update(cursor, registration_id, columns)
            conn.commit()
            return change

    def delete(self, registration_id: str) -> int:
        with self._connection() as conn, conn.cursor() as cursor:
            cursor.execute("DELETE FROM registrations WHERE id = %s", (registration_id,))
            conn.commit()
            return cursor.rowcount

    @staticmethod
    def _execute_update(cursor: psycopg.Cursor, registration_id: str, columns: dict[str, Any]) -> None:
        assignments = sql.SQL(", ").join(
            sql.SQL("{} = {}").format(sql.Identifier(name), sql.Placeholder(name))
            for name in columns
        )
        query = sql.SQL("UPDATE registrations SET {assignments} WHERE id = {id}").format(
            assignments=assignments, id=sql.Placeholder("registration_id")
        )
        cursor.execute(query, {**columns, "registration_id": registration_id})


class PostgresFeeRateProvider:
    """
    Implements FeeRateProvider protocol from the settings table.

    Falls back to the configured defaults when no settings row holds
    additional fee rates.
    """

    def __init__(self, pool: ConnectionPool, defaults: FeeRateConfig | None = None) -> None:
        self._pool = pool
        self._defaults = defaults or FeeRateConfig()

    def get_fee_rates(self) -> FeeRateConfig:
        query = """
            SELECT additional_fees FROM settings
            WHERE additional_fees IS NOT NULL
            ORDER BY updated_at DESC, id DESC
            LIMIT 1
        """
        try:
            with self._pool.connection() as conn, conn.cursor() as cursor:
                cursor.execute(query)
                row = cursor.fetchone()
        except (psycopg.OperationalError, PoolTimeout) as exc:
            raise CollaboratorUnavailable(f"Settings store unavailable: {exc}") from exc

        if row is None:
            return self._defaults
        return FeeRateConfig.from_dict(row[0])


def run_migrations(pool: ConnectionPool) -> None:
    """
    Execute all SQL migration files from the migrations directory.

    Migrations are executed in sorted order (alphabetically by filename).
    Each migration should be idempotent (use IF NOT EXISTS, etc.).

    Args:
        pool: psycopg3 ConnectionPool instance
    """
    # Structure: src/adapters/repository/postgres.py -> migrations/
    migrations_dir = Path(__file__).parent.parent.parent.parent / "migrations"

    if not migrations_dir.exists():
        logger.warning("Migrations directory not found: %s", migrations_dir)
        return

    sql_files = sorted(migrations_dir.glob("*.sql"))

    if not sql_files:
        logger.info("No migration files found")
        return

    logger.info("Running %d migration(s)", len(sql_files))

    for sql_file in sql_files:
        logger.info("Executing migration: %s", sql_file.name)
        try:
            sql_content = sql_file.read_text()

            with pool.connection() as conn:
                conn.execute(sql_content)
                # The pool commits when the connection block exits cleanly

            logger.info("Migration complete: %s", sql_file.name)
        except Exception as e:
            logger.error("Migration failed: %s - %s", sql_file.name, e)
            raise RuntimeError(f"Database migration failed: {sql_file.name}") from e
