"""Summary: SQLite storage implementation for TriageFlow.

Importance: Provides a local-first persistence layer for accounts, messages, and jobs.
Alternatives: Use an ORM or an external database immediately.
"""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Iterator

from triageflow.errors import DuplicateMessage
from triageflow.models import Account, Classification, JobRecord, Message, UNKNOWN_CATEGORY


_MESSAGE_COLUMNS = (
    "id, account_id, remote_message_id, thread_id, sender, recipients, cc, subject, snippet, "
    "received_at, is_read, category, confidence, rationale, source, is_labelled"
)
_UPDATABLE_MESSAGE_FIELDS = {"category", "confidence", "rationale", "source", "is_labelled"}
_JOB_COLUMNS = (
    "account_id, status, started_at, completed_at, total_messages, processed, labelled, "
    "errors, current_batch, total_batches, last_error, heartbeat_at, run_id"
)
_JOB_PLACEHOLDERS = ", ".join("?" * 13)
_ID_CHUNK = 500


@dataclass(frozen=True)
class StoredMessage:
    """Summary: Message record with its classification and database identifier.

    Importance: Supports relabelling and feedback without refetching from the provider.
    Alternatives: Keep classifications in a separate table keyed by message.
    """

    id: int
    account_id: int
    remote_message_id: str
    thread_id: str
    sender: str
    recipients: tuple[str, ...]
    cc: tuple[str, ...]
    subject: str
    snippet: str
    received_at: str
    is_read: bool
    category: str | None
    confidence: float | None
    rationale: str | None
    source: str | None
    is_labelled: bool


@dataclass(frozen=True)
class StoredToken:
    """Summary: Encrypted OAuth token record for an account.

    Importance: Lets the credential provider refresh without user interaction.
    Alternatives: Store tokens in a secrets manager keyed by account.
    """

    account_id: int
    provider: str
    access_token: str
    refresh_token: str | None
    expires_at: str | None


class SqliteStore:
    """Summary: SQLite-backed storage for TriageFlow.

    Importance: Enables local-first persistence with minimal dependencies.
    Alternatives: Use Postgres and SQLAlchemy from day one.
    """

    def __init__(self, db_path: str) -> None:
        """Summary: Initialize the storage with a database path.

        Importance: Allows configurable database location per environment.
        Alternatives: Hardcode a default path in the class.
        """

        self._db_path = Path(db_path)

    def initialize(self) -> None:
        """Summary: Create tables if they do not exist.

        Importance: Ensures the database is ready for runs and queries.
        Alternatives: Run migrations using a dedicated migration tool.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS accounts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    email TEXT NOT NULL UNIQUE,
                    display_name TEXT NOT NULL,
                    plan TEXT NOT NULL DEFAULT 'free',
                    is_onboarded INTEGER NOT NULL DEFAULT 0
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS oauth_tokens (
                    account_id INTEGER PRIMARY KEY,
                    provider TEXT NOT NULL,
                    access_token TEXT NOT NULL,
                    refresh_token TEXT,
                    expires_at TEXT,
                    updated_at TEXT NOT NULL
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    account_id INTEGER NOT NULL,
                    remote_message_id TEXT NOT NULL UNIQUE,
                    thread_id TEXT NOT NULL,
                    sender TEXT NOT NULL,
                    recipients TEXT NOT NULL,
                    cc TEXT NOT NULL,
                    subject TEXT NOT NULL,
                    snippet TEXT NOT NULL,
                    received_at TEXT NOT NULL,
                    is_read INTEGER NOT NULL DEFAULT 0,
                    category TEXT,
                    confidence REAL,
                    rationale TEXT,
                    source TEXT,
                    is_labelled INTEGER NOT NULL DEFAULT 0,
                    processed_at TEXT
                )
                """
            )
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_messages_account ON messages (account_id, is_labelled)"
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS label_mappings (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    account_id INTEGER NOT NULL,
                    category TEXT NOT NULL,
                    label_id TEXT NOT NULL,
                    label_name TEXT NOT NULL,
                    UNIQUE(account_id, category)
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS jobs (
                    account_id INTEGER PRIMARY KEY,
                    status TEXT NOT NULL,
                    started_at TEXT,
                    completed_at TEXT,
                    total_messages INTEGER NOT NULL DEFAULT 0,
                    processed INTEGER NOT NULL DEFAULT 0,
                    labelled INTEGER NOT NULL DEFAULT 0,
                    errors INTEGER NOT NULL DEFAULT 0,
                    current_batch INTEGER NOT NULL DEFAULT 0,
                    total_batches INTEGER NOT NULL DEFAULT 0,
                    last_error TEXT
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS feedback (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    account_id INTEGER NOT NULL,
                    message_id INTEGER NOT NULL,
                    original_category TEXT,
                    corrected_category TEXT NOT NULL,
                    comment TEXT,
                    created_at TEXT NOT NULL
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS rate_limit_counters (
                    key TEXT PRIMARY KEY,
                    count INTEGER NOT NULL,
                    reset_at REAL NOT NULL
                )
                """
            )
            connection.commit()
        self._ensure_column("accounts", "last_sync_at", "TEXT")
        self._ensure_column("jobs", "heartbeat_at", "TEXT")
        self._ensure_column("jobs", "run_id", "TEXT")

    def ensure_account(
        self,
        email: str,
        display_name: str,
        plan: str = "free",
        is_onboarded: bool = False,
    ) -> int:
        """Summary: Create or update an account and return its ID.

        Importance: Provides a stable account record for data ownership and entitlements.
        Alternatives: Mirror accounts from an external identity provider on demand.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                INSERT INTO accounts (email, display_name, plan, is_onboarded)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(email) DO UPDATE SET
                    display_name = excluded.display_name,
                    plan = excluded.plan,
                    is_onboarded = excluded.is_onboarded
                """,
                (email, display_name, plan, int(is_onboarded)),
            )
            cursor.execute("SELECT id FROM accounts WHERE email = ?", (email,))
            row = cursor.fetchone()
            connection.commit()
        return int(row[0])

    def get_account(self, account_id: int) -> Account | None:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                SELECT id, email, display_name, plan, is_onboarded, last_sync_at
                FROM accounts WHERE id = ?
                """,
                (account_id,),
            )
            row = cursor.fetchone()
        return _account_from_row(row) if row else None

    def list_sync_accounts(self, plans: Iterable[str]) -> list[Account]:
        """Summary: List onboarded accounts on the given plans that hold a refresh token.

        Importance: Selects the accounts eligible for the scheduled incremental run.
        Alternatives: Iterate every account and filter in Python.
        """

        plan_list = list(plans)
        if not plan_list:
            return []
        placeholders = ", ".join("?" for _ in plan_list)
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                f"""
                SELECT a.id, a.email, a.display_name, a.plan, a.is_onboarded, a.last_sync_at
                FROM accounts a
                JOIN oauth_tokens t ON t.account_id = a.id
                WHERE a.is_onboarded = 1
                  AND t.refresh_token IS NOT NULL
                  AND a.plan IN ({placeholders})
                ORDER BY a.id
                """,
                plan_list,
            )
            rows = cursor.fetchall()
        return [_account_from_row(row) for row in rows]

    def update_last_sync(self, account_id: int, timestamp: str) -> None:
        with self._connection() as connection:
            connection.execute(
                "UPDATE accounts SET last_sync_at = ? WHERE id = ?", (timestamp, account_id)
            )
            connection.commit()

    def upsert_oauth_token(
        self,
        account_id: int,
        provider: str,
        access_token: str,
        refresh_token: str | None,
        expires_at: str | None,
    ) -> None:
        """Summary: Store encrypted OAuth tokens for an account.

        Importance: Keeps a refresh token from being lost when a new grant omits it.
        Alternatives: Replace the whole row on every grant.
        """

        with self._connection() as connection:
            connection.execute(
                """
                INSERT INTO oauth_tokens (
                    account_id, provider, access_token, refresh_token, expires_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(account_id) DO UPDATE SET
                    provider = excluded.provider,
                    access_token = excluded.access_token,
                    refresh_token = COALESCE(excluded.refresh_token, oauth_tokens.refresh_token),
                    expires_at = excluded.expires_at,
                    updated_at = excluded.updated_at
                """,
                (account_id, provider, access_token, refresh_token, expires_at, _utc_now()),
            )
            connection.commit()

    def get_oauth_token(self, account_id: int) -> StoredToken | None:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                SELECT account_id, provider, access_token, refresh_token, expires_at
                FROM oauth_tokens WHERE account_id = ?
                """,
                (account_id,),
            )
            row = cursor.fetchone()
        if not row:
            return None
        return StoredToken(
            account_id=int(row[0]),
            provider=row[1],
            access_token=row[2],
            refresh_token=row[3],
            expires_at=row[4],
        )

    def update_access_token(self, account_id: int, access_token: str, expires_at: str) -> None:
        with self._connection() as connection:
            connection.execute(
                """
                UPDATE oauth_tokens SET access_token = ?, expires_at = ?, updated_at = ?
                WHERE account_id = ?
                """,
                (access_token, expires_at, _utc_now(), account_id),
            )
            connection.commit()

    def existing_remote_ids(self, account_id: int, remote_ids: Iterable[str]) -> set[str]:
        """Summary: Return the subset of remote ids already recorded for an account.

        Importance: Drives deduplication so re-runs never reprocess a message.
        Alternatives: Query one id at a time.
        """

        ids = list(remote_ids)
        found: set[str] = set()
        with self._connection() as connection:
            cursor = connection.cursor()
            for start in range(0, len(ids), _ID_CHUNK):
                chunk = ids[start : start + _ID_CHUNK]
                placeholders = ", ".join("?" for _ in chunk)
                cursor.execute(
                    f"""
                    SELECT remote_message_id FROM messages
                    WHERE account_id = ? AND remote_message_id IN ({placeholders})
                    """,
                    [account_id, *chunk],
                )
                found.update(row[0] for row in cursor.fetchall())
        return found

    def find_message_by_remote_id(self, remote_message_id: str) -> StoredMessage | None:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE remote_message_id = ?",
                (remote_message_id,),
            )
            row = cursor.fetchone()
        return _message_from_row(row) if row else None

    def get_message(self, message_id: int) -> StoredMessage | None:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE id = ?", (message_id,))
            row = cursor.fetchone()
        return _message_from_row(row) if row else None

    def create_message(
        self,
        account_id: int,
        message: Message,
        classification: Classification,
    ) -> int:
        """Summary: Persist a message together with its classification.

        Importance: The unique remote id makes this insert happen at most once per message.
        Alternatives: INSERT OR IGNORE and silently drop duplicates.
        """

        try:
            with self._connection() as connection:
                cursor = connection.cursor()
                cursor.execute(
                    """
                    INSERT INTO messages (
                        account_id, remote_message_id, thread_id, sender, recipients, cc,
                        subject, snippet, received_at, is_read, category, confidence,
                        rationale, source, is_labelled, processed_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?)
                    """,
                    (
                        account_id,
                        message.remote_message_id,
                        message.thread_id,
                        message.sender,
                        json.dumps(list(message.recipients)),
                        json.dumps(list(message.cc)),
                        message.subject,
                        message.snippet,
                        message.received_at.isoformat(),
                        int(message.is_read),
                        classification.category,
                        classification.confidence,
                        classification.rationale,
                        classification.source,
                        _utc_now(),
                    ),
                )
                message_id = cursor.lastrowid
                connection.commit()
        except sqlite3.IntegrityError as exc:
            raise DuplicateMessage(
                f"Message {message.remote_message_id} is already recorded"
            ) from exc
        return int(message_id)

    def update_message(self, message_id: int, **fields: Any) -> None:
        """Summary: Update classification or labelling columns on a message.

        Importance: Keeps field-level updates limited to mutable columns.
        Alternatives: Expose one method per column.
        """

        unknown = set(fields) - _UPDATABLE_MESSAGE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update message fields: {', '.join(sorted(unknown))}")
        if not fields:
            return
        values = [int(value) if isinstance(value, bool) else value for value in fields.values()]
        assignments = ", ".join(f"{name} = ?" for name in fields)
        with self._connection() as connection:
            connection.execute(
                f"UPDATE messages SET {assignments} WHERE id = ?", [*values, message_id]
            )
            connection.commit()

    def mark_labelled(self, message_ids: Iterable[int]) -> None:
        ids = list(message_ids)
        if not ids:
            return
        with self._connection() as connection:
            connection.executemany(
                "UPDATE messages SET is_labelled = 1 WHERE id = ?", [(message_id,) for message_id in ids]
            )
            connection.commit()

    def list_unlabelled(self, account_id: int, threshold: float, limit: int = 1000) -> list[StoredMessage]:
        """Summary: List processed messages that qualify for a label but lack one.

        Importance: Feeds relabel runs after transient labelling failures.
        Alternatives: Re-run the full pipeline over the mailbox.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                f"""
                SELECT {_MESSAGE_COLUMNS} FROM messages
                WHERE account_id = ?
                  AND is_labelled = 0
                  AND category IS NOT NULL
                  AND category != ?
                  AND confidence >= ?
                ORDER BY id
                LIMIT ?
                """,
                (account_id, UNKNOWN_CATEGORY, threshold, limit),
            )
            rows = cursor.fetchall()
        return [_message_from_row(row) for row in rows]

    def count_messages(self, account_id: int) -> int:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute("SELECT COUNT(*) FROM messages WHERE account_id = ?", (account_id,))
            row = cursor.fetchone()
        return int(row[0])

    def purge_account_data(self, account_id: int) -> int:
        """Summary: Delete messages, classifications, feedback, and label mappings for an account.

        Importance: Backs the full reset so the next bulk run starts from scratch.
        Alternatives: Soft-delete rows with a flag.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute("DELETE FROM feedback WHERE account_id = ?", (account_id,))
            cursor.execute("DELETE FROM messages WHERE account_id = ?", (account_id,))
            deleted = cursor.rowcount
            cursor.execute("DELETE FROM label_mappings WHERE account_id = ?", (account_id,))
            connection.commit()
        return int(deleted)

    def get_label_mapping(self, account_id: int, category: str) -> str | None:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                "SELECT label_id FROM label_mappings WHERE account_id = ? AND category = ?",
                (account_id, category),
            )
            row = cursor.fetchone()
        return row[0] if row else None

    def save_label_mapping(self, account_id: int, category: str, label_id: str, label_name: str) -> None:
        with self._connection() as connection:
            connection.execute(
                """
                INSERT INTO label_mappings (account_id, category, label_id, label_name)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(account_id, category) DO UPDATE SET
                    label_id = excluded.label_id,
                    label_name = excluded.label_name
                """,
                (account_id, category, label_id, label_name),
            )
            connection.commit()

    def get_job(self, account_id: int) -> JobRecord | None:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(f"SELECT {_JOB_COLUMNS} FROM jobs WHERE account_id = ?", (account_id,))
            row = cursor.fetchone()
        return _job_from_row(row) if row else None

    def save_job(self, job: JobRecord) -> None:
        """Summary: Write the whole job record for an account.

        Importance: Whole-record writes keep progress snapshots internally consistent.
        Alternatives: Patch individual counters with UPDATE statements.
        """

        with self._connection() as connection:
            connection.execute(
                f"""
                INSERT OR REPLACE INTO jobs ({_JOB_COLUMNS})
                VALUES ({_JOB_PLACEHOLDERS})
                """,
                _job_values(job),
            )
            connection.commit()

    def update_running_job(self, job: JobRecord) -> bool:
        """Summary: Write a job record only while its run still owns the account's slot.

        Importance: A run that was reset or taken over cannot overwrite its successor.
        Alternatives: Check the stored run id before an unconditional write, which races.
        """

        values = _job_values(job)
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                UPDATE jobs SET
                    status = ?, started_at = ?, completed_at = ?, total_messages = ?, processed = ?,
                    labelled = ?, errors = ?, current_batch = ?, total_batches = ?, last_error = ?,
                    heartbeat_at = ?
                WHERE account_id = ? AND run_id = ? AND status = 'running'
                """,
                (*values[1:12], job.account_id, job.run_id),
            )
            updated = cursor.rowcount == 1
            connection.commit()
        return updated

    def try_start_job(self, job: JobRecord, stale_before: str) -> bool:
        """Summary: Atomically write a running job unless a live run already exists.

        Importance: Compare-and-set on status makes bulk runs single-flight per account.
        Alternatives: Hold an in-process lock keyed by account.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                f"""
                INSERT INTO jobs ({_JOB_COLUMNS})
                VALUES ({_JOB_PLACEHOLDERS})
                ON CONFLICT(account_id) DO UPDATE SET
                    status = excluded.status,
                    started_at = excluded.started_at,
                    completed_at = excluded.completed_at,
                    total_messages = excluded.total_messages,
                    processed = excluded.processed,
                    labelled = excluded.labelled,
                    errors = excluded.errors,
                    current_batch = excluded.current_batch,
                    total_batches = excluded.total_batches,
                    last_error = excluded.last_error,
                    heartbeat_at = excluded.heartbeat_at,
                    run_id = excluded.run_id
                WHERE jobs.status != 'running'
                   OR jobs.heartbeat_at IS NULL
                   OR jobs.heartbeat_at < ?
                """,
                [*_job_values(job), stale_before],
            )
            started = cursor.rowcount == 1
            connection.commit()
        return started

    def expire_stale_job(self, account_id: int, stale_before: str, message: str, completed_at: str) -> bool:
        """Summary: Flip a running job with an old heartbeat to error.

        Importance: Recovers accounts whose worker died mid-run.
        Alternatives: Require an operator reset for every crashed run.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                UPDATE jobs SET status = 'error', last_error = ?, completed_at = ?
                WHERE account_id = ?
                  AND status = 'running'
                  AND (heartbeat_at IS NULL OR heartbeat_at < ?)
                """,
                (message, completed_at, account_id, stale_before),
            )
            expired = cursor.rowcount == 1
            connection.commit()
        return expired

    def record_feedback(
        self,
        account_id: int,
        message_id: int,
        original_category: str | None,
        corrected_category: str,
        comment: str | None,
    ) -> int:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                INSERT INTO feedback (
                    account_id, message_id, original_category, corrected_category, comment, created_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (account_id, message_id, original_category, corrected_category, comment, _utc_now()),
            )
            feedback_id = cursor.lastrowid
            connection.commit()
        return int(feedback_id)

    def list_feedback(self, account_id: int) -> list[dict[str, Any]]:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                SELECT id, message_id, original_category, corrected_category, comment, created_at
                FROM feedback WHERE account_id = ? ORDER BY id
                """,
                (account_id,),
            )
            rows = cursor.fetchall()
        keys = ("id", "message_id", "original_category", "corrected_category", "comment", "created_at")
        return [dict(zip(keys, row)) for row in rows]

    def increment_rate_counter(self, key: str, window_seconds: int, now: float) -> tuple[int, float]:
        """Summary: Count a hit in a fixed window and return the count and reset time.

        Importance: The upsert holds the write lock, so concurrent processes never lose hits.
        Alternatives: Read, compute, and write in separate statements.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                INSERT INTO rate_limit_counters (key, count, reset_at) VALUES (?, 1, ?)
                ON CONFLICT(key) DO UPDATE SET
                    count = CASE WHEN rate_limit_counters.reset_at <= ? THEN 1
                                 ELSE rate_limit_counters.count + 1 END,
                    reset_at = CASE WHEN rate_limit_counters.reset_at <= ? THEN excluded.reset_at
                                    ELSE rate_limit_counters.reset_at END
                """,
                (key, now + window_seconds, now, now),
            )
            cursor.execute("SELECT count, reset_at FROM rate_limit_counters WHERE key = ?", (key,))
            row = cursor.fetchone()
            connection.commit()
        return int(row[0]), float(row[1])

    def _ensure_column(self, table: str, column: str, column_type: str = "INTEGER") -> None:
        """Summary: Ensure a column exists in a table.

        Importance: Provides lightweight migration support for new fields.
        Alternatives: Use a migration tool to manage schema changes.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(f"PRAGMA table_info({table})")
            columns = {row[1] for row in cursor.fetchall()}
            if column in columns:
                return
            cursor.execute(f"ALTER TABLE {table} ADD COLUMN {column} {column_type}")
            connection.commit()

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Summary: Context manager for SQLite connections.

        Importance: Ensures connections are closed cleanly after use.
        Alternatives: Keep a single long-lived connection.
        """

        connection = sqlite3.connect(self._db_path, timeout=30)
        try:
            yield connection
        finally:
            connection.close()


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _account_from_row(row: tuple[Any, ...]) -> Account:
    return Account(
        id=int(row[0]),
        email=row[1],
        display_name=row[2],
        plan=row[3],
        is_onboarded=bool(row[4]),
        last_sync_at=row[5],
    )


def _message_from_row(row: tuple[Any, ...]) -> StoredMessage:
    return StoredMessage(
        id=int(row[0]),
        account_id=int(row[1]),
        remote_message_id=row[2],
        thread_id=row[3],
        sender=row[4],
        recipients=tuple(json.loads(row[5])),
        cc=tuple(json.loads(row[6])),
        subject=row[7],
        snippet=row[8],
        received_at=row[9],
        is_read=bool(row[10]),
        category=row[11],
        confidence=row[12],
        rationale=row[13],
        source=row[14],
        is_labelled=bool(row[15]),
    )


def _job_values(job: JobRecord) -> tuple[Any, ...]:
    return (
        job.account_id,
        job.status,
        job.started_at,
        job.completed_at,
        job.total_messages,
        job.processed,
        job.labelled,
        job.errors,
        job.current_batch,
        job.total_batches,
        job.last_error,
        job.heartbeat_at,
        job.run_id,
    )


def _job_from_row(row: tuple[Any, ...]) -> JobRecord:
    return JobRecord(
        account_id=int(row[0]),
        status=row[1],
        started_at=row[2],
        completed_at=row[3],
        total_messages=int(row[4]),
        processed=int(row[5]),
        labelled=int(row[6]),
        errors=int(row[7]),
        current_batch=int(row[8]),
        total_batches=int(row[9]),
        last_error=row[10],
        heartbeat_at=row[11],
        run_id=row[12],
    )

