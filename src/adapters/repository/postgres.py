"""
PostgreSQL repository adapter - Implements AttendeeStore protocol.

This module provides the PostgreSQL implementation of the domain's
attendee store port using psycopg3 with raw SQL.

Concurrency notes:
------------------
1. **Counts**: add_count() applies a delta with a single
   ``UPDATE ... SET pending = pending + %s`` statement, so concurrent
   registrations touching the same package never lose an increment.

2. **Attendees**: writes are last-writer-wins. The domain accepts that a
   concurrent reconciliation can briefly be overwritten, because the next
   reconciliation re-derives every cached field from the ledger.

3. **Soft delete**: deleted attendees keep their row (deleted_at set). The
   domain appends a marker to identity and zip on deletion, which frees the
   unique index on (nickname, zip, email) for a new registration.
"""

import logging
from pathlib import Path
from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from src.domain.exceptions import AttendeeNotFound, CountNotInitialized
from src.domain.models import AdminInfo, Attendee, Count, CountDelta, StatusChange
from src.domain.ports import Status

logger = logging.getLogger(__name__)

_ATTENDEE_COLUMNS = """
    id, nickname, email, zip, identity, registration_language, packages, created_at,
    cache_total_dues, cache_payment_balance, cache_open_balance, cache_due_date
"""


def _attendee_from_row(row: dict[str, Any]) -> Attendee:
    return Attendee(
        id=row["id"],
        nickname=row["nickname"],
        email=row["email"],
        zip=row["zip"],
        identity=row["identity"],
        registration_language=row["registration_language"],
        packages={code: int(count) for code, count in (row["packages"] or {}).items()},
        created_at=row["created_at"],
        cache_total_dues=row["cache_total_dues"],
        cache_payment_balance=row["cache_payment_balance"],
        cache_open_balance=row["cache_open_balance"],
        cache_due_date=row["cache_due_date"],
    )


class PostgresAttendeeStore:
    """
    Implements AttendeeStore protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """
        Initialize repository with connection pool.

        Args:
            pool: psycopg3 ConnectionPool for database connections
        """
        self._pool = pool

    # --- attendees ---

    def add_attendee(self, attendee: Attendee) -> int:
        sql = """
            INSERT INTO attendees (nickname, email, zip, identity, registration_language, packages,
                                   cache_total_dues, cache_payment_balance, cache_open_balance,
                                   cache_due_date)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING id
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(
                sql,
                (
                    attendee.nickname,
                    attendee.email,
                    attendee.zip,
                    attendee.identity,
                    attendee.registration_language,
                    Jsonb(dict(attendee.packages)),
                    attendee.cache_total_dues,
                    attendee.cache_payment_balance,
                    attendee.cache_open_balance,
                    attendee.cache_due_date,
                ),
            )
            row = cursor.fetchone()
            conn.commit()
            return row[0]

    def get_attendee(self, attendee_id: int) -> Attendee:
        sql = f"SELECT {_ATTENDEE_COLUMNS} FROM attendees WHERE id = %s"
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, (attendee_id,))
            row = cursor.fetchone()
        if row is None:
            raise AttendeeNotFound(attendee_id)
        return _attendee_from_row(row)

    def update_attendee(self, attendee: Attendee) -> None:
        sql = """
            UPDATE attendees
            SET nickname = %s, email = %s, zip = %s, identity = %s, registration_language = %s,
                packages = %s, cache_total_dues = %s, cache_payment_balance = %s,
                cache_open_balance = %s, cache_due_date = %s, updated_at = NOW()
            WHERE id = %s
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(
                sql,
                (
                    attendee.nickname,
                    attendee.email,
                    attendee.zip,
                    attendee.identity,
                    attendee.registration_language,
                    Jsonb(dict(attendee.packages)),
                    attendee.cache_total_dues,
                    attendee.cache_payment_balance,
                    attendee.cache_open_balance,
                    attendee.cache_due_date,
                    attendee.id,
                ),
            )
            conn.commit()
            if cursor.rowcount != 1:
                raise AttendeeNotFound(attendee.id)

    def count_attendees_by_nickname_zip_email(self, nickname: str, zip_code: str, email: str) -> int:
        # deleted rows count too, they still occupy the unique index
        sql = "SELECT COUNT(*) FROM attendees WHERE nickname = %s AND zip = %s AND email = %s"
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (nickname, zip_code, email))
            return cursor.fetchone()[0]

    def find_by_identity(self, identity: str) -> list[Attendee]:
        if not identity:
            return []
        sql = f"SELECT {_ATTENDEE_COLUMNS} FROM attendees WHERE identity = %s ORDER BY id"
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, (identity,))
            return [_attendee_from_row(row) for row in cursor.fetchall()]

    def find_by_package(self, package: str) -> list[Attendee]:
        sql = f"""
            SELECT {_ATTENDEE_COLUMNS} FROM attendees
            WHERE deleted_at IS NULL AND COALESCE((packages ->> %s)::int, 0) > 0
            ORDER BY id
        """
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, (package,))
            return [_attendee_from_row(row) for row in cursor.fetchall()]

    def soft_delete_attendee(self, attendee_id: int) -> None:
        self._set_deleted(attendee_id, "NOW()")

    def undelete_attendee(self, attendee_id: int) -> None:
        self._set_deleted(attendee_id, "NULL")

    def _set_deleted(self, attendee_id: int, value: str) -> None:
        sql = f"UPDATE attendees SET deleted_at = {value} WHERE id = %s"
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (attendee_id,))
            conn.commit()
            if cursor.rowcount != 1:
                raise AttendeeNotFound(attendee_id)

    # --- admin info ---

    def get_admin_info(self, attendee_id: int) -> AdminInfo:
        sql = """
            SELECT flags, permissions, admin_comments, manual_dues, manual_dues_description
            FROM admin_infos WHERE attendee_id = %s
        """
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, (attendee_id,))
            row = cursor.fetchone()
        if row is None:
            return AdminInfo(attendee_id=attendee_id)
        return AdminInfo(
            attendee_id=attendee_id,
            flags=frozenset(row["flags"]),
            permissions=frozenset(row["permissions"]),
            admin_comments=row["admin_comments"],
            manual_dues=row["manual_dues"],
            manual_dues_description=row["manual_dues_description"],
        )

    def write_admin_info(self, admin_info: AdminInfo) -> None:
        sql = """
            INSERT INTO admin_infos (attendee_id, flags, permissions, admin_comments,
                                     manual_dues, manual_dues_description)
            VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT (attendee_id) DO UPDATE
            SET flags = EXCLUDED.flags,
                permissions = EXCLUDED.permissions,
                admin_comments = EXCLUDED.admin_comments,
                manual_dues = EXCLUDED.manual_dues,
                manual_dues_description = EXCLUDED.manual_dues_description
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(
                sql,
                (
                    admin_info.attendee_id,
                    sorted(admin_info.flags),
                    sorted(admin_info.permissions),
                    admin_info.admin_comments,
                    admin_info.manual_dues,
                    admin_info.manual_dues_description,
                ),
            )
            conn.commit()

    # --- status history ---

    def get_status_changes(self, attendee_id: int) -> list[StatusChange]:
        sql = """
            SELECT status, comments, created_at FROM status_changes
            WHERE attendee_id = %s ORDER BY id
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (attendee_id,))
            return [
                StatusChange(
                    attendee_id=attendee_id, status=Status(row[0]), comment=row[1], created_at=row[2]
                )
                for row in cursor.fetchall()
            ]

    def add_status_change(self, change: StatusChange) -> None:
        sql = "INSERT INTO status_changes (attendee_id, status, comments) VALUES (%s, %s, %s)"
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (change.attendee_id, change.status.value, change.comment))
            conn.commit()

    # --- counts ---

    def create_count(self, initial: Count) -> Count:
        """Provision a count row if missing, returning the stored row."""
        sql = """
            INSERT INTO counts (area, name, pending, attending)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT (area, name) DO NOTHING
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (initial.area, initial.name, initial.pending, initial.attending))
            conn.commit()
        return self.get_count(initial.area, initial.name)

    def get_count(self, area: str, name: str) -> Count:
        sql = "SELECT pending, attending FROM counts WHERE area = %s AND name = %s"
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (area, name))
            row = cursor.fetchone()
        if row is None:
            logger.error("counts for area %s name %s missing - should have been provisioned", area, name)
            raise CountNotInitialized(area, name)
        return Count(area=area, name=name, pending=row[0], attending=row[1])

    def add_count(self, delta: CountDelta) -> Count:
        sql = """
            UPDATE counts
            SET pending = pending + %s, attending = attending + %s, updated_at = NOW()
            WHERE area = %s AND name = %s
            RETURNING pending, attending
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (delta.pending, delta.attending, delta.area, delta.name))
            row = cursor.fetchone()
            conn.commit()
        if row is None:
            logger.error("error adding counts area %s name %s: row missing", delta.area, delta.name)
            raise CountNotInitialized(delta.area, delta.name)
        return Count(area=delta.area, name=delta.name, pending=row[0], attending=row[1])

    def reset_count(self, overwrite: Count) -> None:
        sql = """
            UPDATE counts
            SET pending = %s, attending = %s, updated_at = NOW()
            WHERE area = %s AND name = %s
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (overwrite.pending, overwrite.attending, overwrite.area, overwrite.name))
            conn.commit()
            if cursor.rowcount != 1:
                logger.error(
                    "error resetting counts area %s name %s: row missing", overwrite.area, overwrite.name
                )
                raise CountNotInitialized(overwrite.area, overwrite.name)


MIGRATIONS_DIR = Path(__file__).resolve().parents[3] / "migrations"


def run_migrations(pool: ConnectionPool, migrations_dir: Path = MIGRATIONS_DIR) -> None:
    """
    Apply the schema files in migrations_dir in filename order.

    Every file must be idempotent, they run on each start.

    Raises:
        RuntimeError: A migration file failed, the cause is chained
    """
    if not migrations_dir.is_dir():
        logger.warning("migrations directory %s not found, schema left unchanged", migrations_dir)
        return

    sql_files = sorted(migrations_dir.glob("*.sql"))
    logger.info("applying %d migration(s) from %s", len(sql_files), migrations_dir)

    for sql_file in sql_files:
        try:
            with pool.connection() as conn:
                conn.execute(sql_file.read_text())
        except psycopg.Error as e:
            logger.error("migration %s failed: %s", sql_file.name, e)
            raise RuntimeError(f"database migration failed: {sql_file.name}") from e
        logger.info("migration %s applied", sql_file.name)
