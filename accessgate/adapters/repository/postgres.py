"""
PostgreSQL repository adapter - Implements InvitationRepository protocol.

This module provides the PostgreSQL implementation of the domain's
repository port using psycopg3 with raw SQL.

Concurrency Design - Single Consumption:
---------------------------------------
The only operation that needs mutual exclusion is the account_created flip.
mark_account_created issues one conditional UPDATE:

    UPDATE approved_users SET account_created = TRUE
    WHERE id = %s AND account_created = FALSE AND expires_at > %s

PostgreSQL row locking serializes concurrent updates of the same row; the
second writer re-evaluates the WHERE clause after the first commits, finds
account_created = TRUE and updates zero rows. Exactly one caller sees
rowcount == 1.

Approval runs as one transaction: submission status, approval upsert
(ON CONFLICT on waitlist_submission_id rotates the token in place) and
magic-link replacement commit together. Concurrent re-approvals are
last-write-wins; a superseded token no longer matches setup_token.
"""

import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any

from psycopg_pool import ConnectionPool

from accessgate.domain.models import (
    ApprovedUser,
    MagicLink,
    SubmissionStatus,
    WaitlistSubmission,
)

logger = logging.getLogger(__name__)

_SUBMISSION_COLUMNS = (
    "id, first_name, last_name, email, status, admin_notes, reviewed_by, reviewed_at, created_at"
)
_APPROVED_USER_COLUMNS = (
    "id, waitlist_submission_id, setup_token, expires_at, account_created, created_at"
)
_MAGIC_LINK_COLUMNS = (
    "id, approved_user_id, email, token_hash, expires_at, used, used_at, created_at"
)


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


def _to_submission(row: tuple[Any, ...]) -> WaitlistSubmission:
    return WaitlistSubmission(
        id=str(row[0]),
        first_name=row[1],
        last_name=row[2],
        email=row[3],
        status=SubmissionStatus(row[4]),
        admin_notes=row[5],
        reviewed_by=row[6],
        reviewed_at=row[7],
        created_at=row[8],
    )


def _to_approved_user(row: tuple[Any, ...]) -> ApprovedUser:
    return ApprovedUser(
        id=str(row[0]),
        waitlist_submission_id=str(row[1]),
        setup_token=row[2],
        expires_at=row[3],
        account_created=row[4],
        created_at=row[5],
    )


def _to_magic_link(row: tuple[Any, ...]) -> MagicLink:
    return MagicLink(
        id=str(row[0]),
        approved_user_id=str(row[1]),
        email=row[2],
        token_hash=row[3],
        expires_at=row[4],
        used=row[5],
        used_at=row[6],
        created_at=row[7],
    )


class PostgresInvitationRepository:
    """
    Implements InvitationRepository protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries for security.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """
        Initialize repository with connection pool.

        Args:
            pool: psycopg3 ConnectionPool for database connections
        """
        self._pool = pool

    def get_submission(self, submission_id: str) -> WaitlistSubmission | None:
        if not _is_uuid(submission_id):
            return None
        sql = f"SELECT {_SUBMISSION_COLUMNS} FROM waitlist_submissions WHERE id = %s"
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (submission_id,))
            row = cursor.fetchone()
        return _to_submission(row) if row is not None else None

    def list_submissions(
        self, status: SubmissionStatus | None = None
    ) -> list[WaitlistSubmission]:
        if status is None:
            sql = f"SELECT {_SUBMISSION_COLUMNS} FROM waitlist_submissions ORDER BY created_at DESC"
            params: tuple[Any, ...] = ()
        else:
            sql = f"""
                SELECT {_SUBMISSION_COLUMNS} FROM waitlist_submissions
                WHERE status = %s
                ORDER BY created_at DESC
            """
            params = (status.value,)
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, params)
            rows = cursor.fetchall()
        return [_to_submission(row) for row in rows]

    def save_approval(
        self,
        submission_id: str,
        setup_token: str,
        token_hash: str,
        expires_at: datetime,
        reviewed_by: str | None,
        notes: str | None,
        now: datetime,
    ) -> ApprovedUser | None:
        """
        Approve submission, upsert approval row and replace magic links atomically.

        The submission UPDATE only matches PENDING or APPROVED rows; the
        approval upsert never resets a row whose account was already created.
        Either guard failing rolls the whole transaction back.
        """
        approve_sql = """
            UPDATE waitlist_submissions
            SET status = 'approved',
                admin_notes = COALESCE(%s, admin_notes),
                reviewed_by = %s,
                reviewed_at = %s
            WHERE id = %s AND status IN ('pending', 'approved')
            RETURNING email
        """

        upsert_sql = f"""
            INSERT INTO approved_users
                (waitlist_submission_id, setup_token, expires_at, account_created, created_at)
            VALUES (%s, %s, %s, FALSE, %s)
            ON CONFLICT (waitlist_submission_id) DO UPDATE
            SET setup_token = EXCLUDED.setup_token,
                expires_at = EXCLUDED.expires_at
            WHERE approved_users.account_created = FALSE
            RETURNING {_APPROVED_USER_COLUMNS}
        """

        delete_links_sql = "DELETE FROM magic_links WHERE approved_user_id = %s"

        insert_link_sql = """
            INSERT INTO magic_links (approved_user_id, email, token_hash, used, expires_at, created_at)
            VALUES (%s, %s, %s, FALSE, %s, %s)
        """

        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(approve_sql, (notes, reviewed_by, now, submission_id))
            submission_row = cursor.fetchone()
            if submission_row is None:
                conn.rollback()
                return None
            email = submission_row[0]

            cursor.execute(upsert_sql, (submission_id, setup_token, expires_at, now))
            approved_row = cursor.fetchone()
            if approved_row is None:
                conn.rollback()
                return None
            approved_user = _to_approved_user(approved_row)

            cursor.execute(delete_links_sql, (approved_user.id,))
            cursor.execute(
                insert_link_sql, (approved_user.id, email, token_hash, expires_at, now)
            )
            conn.commit()
            return approved_user

    def find_approved_user_by_token(self, setup_token: str) -> ApprovedUser | None:
        sql = f"SELECT {_APPROVED_USER_COLUMNS} FROM approved_users WHERE setup_token = %s"
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (setup_token,))
            row = cursor.fetchone()
        return _to_approved_user(row) if row is not None else None

    def get_approved_user(self, approved_user_id: str) -> ApprovedUser | None:
        if not _is_uuid(approved_user_id):
            return None
        sql = f"SELECT {_APPROVED_USER_COLUMNS} FROM approved_users WHERE id = %s"
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (approved_user_id,))
            row = cursor.fetchone()
        return _to_approved_user(row) if row is not None else None

    def mark_account_created(self, approved_user_id: str, now: datetime) -> bool:
        """
        Compare-and-swap account_created False -> True.

        Returns:
            True only for the single caller whose UPDATE matched the row
        """
        sql = """
            UPDATE approved_users
            SET account_created = TRUE
            WHERE id = %s AND account_created = FALSE AND expires_at > %s
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (approved_user_id, now))
            conn.commit()
            return cursor.rowcount == 1

    def mark_submission_registered(self, submission_id: str) -> None:
        sql = "UPDATE waitlist_submissions SET status = 'registered' WHERE id = %s"
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (submission_id,))
            conn.commit()

    def mark_magic_link_used(self, approved_user_id: str, used_at: datetime) -> None:
        sql = """
            UPDATE magic_links
            SET used = TRUE, used_at = %s
            WHERE approved_user_id = %s AND used = FALSE
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (used_at, approved_user_id))
            conn.commit()

    def list_magic_links(self, approved_user_id: str) -> list[MagicLink]:
        sql = f"""
            SELECT {_MAGIC_LINK_COLUMNS} FROM magic_links
            WHERE approved_user_id = %s
            ORDER BY created_at
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (approved_user_id,))
            rows = cursor.fetchall()
        return [_to_magic_link(row) for row in rows]

    def reject_submission(
        self, submission_id: str, notes: str | None, reviewed_by: str | None, now: datetime
    ) -> bool:
        """
        Reject a PENDING submission. An already REJECTED row matches but keeps
        its original review metadata.
        """
        sql = """
            UPDATE waitlist_submissions
            SET status = 'rejected',
                admin_notes = CASE WHEN status = 'pending'
                    THEN COALESCE(%s, admin_notes) ELSE admin_notes END,
                reviewed_by = CASE WHEN status = 'pending' THEN %s ELSE reviewed_by END,
                reviewed_at = CASE WHEN status = 'pending' THEN %s ELSE reviewed_at END
            WHERE id = %s AND status IN ('pending', 'rejected')
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (notes, reviewed_by, now, submission_id))
            conn.commit()
            return cursor.rowcount == 1

    def reset_submission(self, email: str) -> WaitlistSubmission | None:
        """
        Delete approval rows (magic links cascade) and reset to PENDING.

        Runs in one transaction so a half-reset submission is never visible.
        """
        delete_sql = """
            DELETE FROM approved_users
            WHERE waitlist_submission_id IN (
                SELECT id FROM waitlist_submissions WHERE email = %s
            )
        """
        reset_sql = f"""
            UPDATE waitlist_submissions
            SET status = 'pending',
                admin_notes = NULL,
                reviewed_by = NULL,
                reviewed_at = NULL
            WHERE email = %s
            RETURNING {_SUBMISSION_COLUMNS}
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(delete_sql, (email,))
            cursor.execute(reset_sql, (email,))
            row = cursor.fetchone()
            conn.commit()
        return _to_submission(row) if row is not None else None


def run_migrations(pool: ConnectionPool) -> None:
    """
    Execute all SQL migration files from the migrations directory.

    Migrations are executed in sorted order (alphabetically by filename).
    Each migration should be idempotent (use IF NOT EXISTS, etc.).

    Args:
        pool: psycopg3 ConnectionPool instance
    """
    # Structure: accessgate/adapters/repository/postgres.py -> migrations/
    migrations_dir = Path(__file__).parent.parent.parent.parent / "migrations"

    if not migrations_dir.exists():
        logger.warning(f"Migrations directory not found: {migrations_dir}")
        return

    sql_files = sorted(migrations_dir.glob("*.sql"))

    if not sql_files:
        logger.info("No migration files found")
        return

    logger.info(f"Running {len(sql_files)} migration(s)")

    for sql_file in sql_files:
        logger.info(f"Executing migration: {sql_file.name}")
        try:
            sql_content = sql_file.read_text()

            with pool.connection() as conn:
                conn.execute(sql_content)

            logger.info(f"Migration complete: {sql_file.name}")
        except Exception as e:
            logger.error(f"Migration failed: {sql_file.name} - {e}")
            raise RuntimeError(f"Database migration failed: {sql_file.name}") from e
