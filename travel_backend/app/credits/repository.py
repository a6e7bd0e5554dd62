"""Persistence layer for accounts and payment records."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional, Sequence

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from ...app_context import get_conn, release_conn
from .exceptions import LedgerStoreError
from .models import Account, LedgerStats, PaymentRecord, PaymentRecordStatus

logger = logging.getLogger("credits.repository")


SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS credit_accounts (
        account_id TEXT PRIMARY KEY,
        credits BIGINT NOT NULL DEFAULT 0 CHECK (credits >= 0),
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS payment_records (
        id BIGSERIAL PRIMARY KEY,
        account_id TEXT NOT NULL,
        session_id TEXT NOT NULL,
        amount BIGINT NOT NULL CHECK (amount >= 0),
        credits BIGINT NOT NULL CHECK (credits >= 0),
        status TEXT NOT NULL DEFAULT 'pending'
            CHECK (status IN ('pending', 'completed', 'failed')),
        package_id TEXT,
        currency TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    "CREATE UNIQUE INDEX IF NOT EXISTS ux_payment_records_session_id ON payment_records (session_id)",
    "CREATE INDEX IF NOT EXISTS ix_payment_records_account_id ON payment_records (account_id)",
)


@contextmanager
def managed_connection(conn: Optional[PgConnection] = None) -> Iterator[tuple[PgConnection, bool]]:
    """Context manager that manages transaction boundaries for optional connections."""

    if conn is not None:
        yield conn, False
        return

    connection = get_conn()
    broken = False
    try:
        yield connection, True
        connection.commit()
    except Exception:
        try:
            connection.rollback()
        except psycopg2.Error:
            broken = True
        raise
    finally:
        release_conn(connection, discard=broken or bool(connection.closed))


def ensure_schema(conn: Optional[PgConnection] = None) -> None:
    with managed_connection(conn) as (connection, _):
        with connection.cursor() as cursor:
            for statement in SCHEMA_STATEMENTS:
                cursor.execute(statement)
    logger.info("Credit ledger schema ensured")


def _row_to_account(row: dict) -> Account:
    return Account(
        account_id=row["account_id"],
        credits=int(row["credits"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_payment_record(row: dict) -> PaymentRecord:
    return PaymentRecord(
        account_id=row["account_id"],
        session_id=row["session_id"],
        amount=int(row["amount"]),
        credits=int(row["credits"]),
        status=PaymentRecordStatus(row["status"]),
        package_id=row.get("package_id"),
        currency=row.get("currency"),
        created_at=row["created_at"],
    )


class _PostgresRepository:
    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    @contextmanager
    def _cursor(self) -> Iterator[PgCursor]:
        try:
            with managed_connection(self._conn) as (connection, _managed):
                cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
                try:
                    yield cursor
                finally:
                    cursor.close()
        except psycopg2.Error as exc:
            raise LedgerStoreError(f"Database error: {exc}", original_error=exc) from exc


class PostgresAccountStore(_PostgresRepository):
    """Account balances stored in ``credit_accounts`` with atomic updates."""

    def find_by_identity(self, account_id: str) -> Optional[Account]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT account_id, credits, created_at, updated_at
                FROM credit_accounts
                WHERE account_id = %s
                LIMIT 1
                """,
                (account_id,),
            )
            row = cursor.fetchone()
            return _row_to_account(row) if row else None

    def create_account(self, account_id: str, initial_credits: int) -> Optional[Account]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO credit_accounts (account_id, credits)
                VALUES (%s, %s)
                ON CONFLICT (account_id) DO NOTHING
                RETURNING account_id, credits, created_at, updated_at
                """,
                (account_id, initial_credits),
            )
            row = cursor.fetchone()
            return _row_to_account(row) if row else None

    def increment_credits(self, account_id: str, delta: int) -> Optional[Account]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE credit_accounts
                SET credits = credits + %s, updated_at = NOW()
                WHERE account_id = %s
                RETURNING account_id, credits, created_at, updated_at
                """,
                (delta, account_id),
            )
            row = cursor.fetchone()
            return _row_to_account(row) if row else None

    def debit_credits(self, account_id: str, amount: int) -> Optional[Account]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE credit_accounts
                SET credits = credits - %s, updated_at = NOW()
                WHERE account_id = %s AND credits >= %s
                RETURNING account_id, credits, created_at, updated_at
                """,
                (amount, account_id, amount),
            )
            row = cursor.fetchone()
            return _row_to_account(row) if row else None

    def set_credits(self, account_id: str, credits: int) -> Optional[Account]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE credit_accounts
                SET credits = %s, updated_at = NOW()
                WHERE account_id = %s
                RETURNING account_id, credits, created_at, updated_at
                """,
                (credits, account_id),
            )
            row = cursor.fetchone()
            return _row_to_account(row) if row else None

    def count_accounts(self) -> int:
        with self._cursor() as cursor:
            cursor.execute("SELECT COUNT(*) AS total FROM credit_accounts")
            row = cursor.fetchone()
            return int(row["total"]) if row else 0


class PostgresTransactionLog(_PostgresRepository):
    """Payment records stored in ``payment_records``, unique per checkout session."""

    def claim(self, record: PaymentRecord) -> Optional[PaymentRecord]:
        with self._cursor() as cursor:
            # A failed session may be claimed again; pending and completed ones never.
            cursor.execute(
                """
                INSERT INTO payment_records (
                    account_id,
                    session_id,
                    amount,
                    credits,
                    status,
                    package_id,
                    currency,
                    created_at
                )
                VALUES (%(account_id)s, %(session_id)s, %(amount)s, %(credits)s,
                        %(pending)s, %(package_id)s, %(currency)s, %(created_at)s)
                ON CONFLICT (session_id) DO UPDATE
                SET account_id = EXCLUDED.account_id,
                    amount = EXCLUDED.amount,
                    credits = EXCLUDED.credits,
                    status = EXCLUDED.status,
                    package_id = EXCLUDED.package_id,
                    currency = EXCLUDED.currency,
                    updated_at = NOW()
                WHERE payment_records.status = %(failed)s
                RETURNING id
                """,
                {
                    "account_id": record.account_id,
                    "session_id": record.session_id,
                    "amount": record.amount,
                    "credits": record.credits,
                    "pending": PaymentRecordStatus.PENDING.value,
                    "failed": PaymentRecordStatus.FAILED.value,
                    "package_id": record.package_id,
                    "currency": record.currency,
                    "created_at": record.created_at,
                },
            )
            if cursor.fetchone() is not None:
                return None

            cursor.execute(
                """
                SELECT account_id, session_id, amount, credits, status, package_id, currency, created_at
                FROM payment_records
                WHERE session_id = %s
                """,
                (record.session_id,),
            )
            row = cursor.fetchone()
            if row is None:
                raise LedgerStoreError(f"Checkout session {record.session_id} could not be claimed")
            return _row_to_payment_record(row)

    def _transition(self, session_id: str, target: PaymentRecordStatus) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE payment_records
                SET status = %s, updated_at = NOW()
                WHERE session_id = %s AND status = %s
                """,
                (target.value, session_id, PaymentRecordStatus.PENDING.value),
            )
            return cursor.rowcount > 0

    def mark_completed(self, session_id: str) -> bool:
        return self._transition(session_id, PaymentRecordStatus.COMPLETED)

    def mark_failed(self, session_id: str) -> bool:
        return self._transition(session_id, PaymentRecordStatus.FAILED)

    def list_for_account(self, account_id: str, *, limit: int = 20) -> Sequence[PaymentRecord]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT account_id, session_id, amount, credits, status, package_id, currency, created_at
                FROM payment_records
                WHERE account_id = %s
                ORDER BY created_at DESC
                LIMIT %s
                """,
                (account_id, limit),
            )
            rows = cursor.fetchall() or []
            return [_row_to_payment_record(row) for row in rows]

    def summarize_completed(self) -> LedgerStats:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT COUNT(*) AS completed_payments,
                       COALESCE(SUM(amount), 0) AS total_revenue,
                       COALESCE(SUM(credits), 0) AS total_purchased_credits
                FROM payment_records
                WHERE status = %s
                """,
                (PaymentRecordStatus.COMPLETED.value,),
            )
            row = cursor.fetchone() or {}
            return LedgerStats(
                completed_payments=int(row.get("completed_payments", 0)),
                total_revenue=int(row.get("total_revenue", 0)),
                total_purchased_credits=int(row.get("total_purchased_credits", 0)),
            )


__all__ = [
    "PostgresAccountStore",
    "PostgresTransactionLog",
    "SCHEMA_STATEMENTS",
    "ensure_schema",
    "managed_connection",
]
