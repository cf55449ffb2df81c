"""Summary: Job state store for bulk sort runs.

Importance: Tracks progress durably, enforces one running job per account, and recovers dead runs.
Alternatives: Keep run state in memory and lose it on restart.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from triageflow.errors import JobAlreadyRunning, JobSuperseded
from triageflow.models import JOB_COMPLETED, JOB_ERROR, JOB_IDLE, JOB_RUNNING, JobRecord
from triageflow.storage.sqlite_store import SqliteStore


logger = logging.getLogger(__name__)

STALE_MESSAGE = "Run stopped reporting progress and was marked as failed"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(moment: datetime) -> str:
    return moment.isoformat(timespec="microseconds")


@dataclass(frozen=True)
class JobStateStore:
    """Summary: Reads and writes the single job record kept per account.

    Importance: Only the orchestrator writes through this store during a run.
    Alternatives: Let worker tasks update counters directly.
    """

    store: SqliteStore
    stale_after_seconds: int = 900
    clock: Callable[[], datetime] = utc_now

    def get(self, account_id: int) -> JobRecord:
        """Summary: Return the current job record, expiring a stale running job first.

        Importance: Progress polling doubles as crash detection.
        Alternatives: Run a periodic sweeper for stale jobs.
        """

        now = self.clock()
        if self.store.expire_stale_job(account_id, self._stale_before(now), STALE_MESSAGE, isoformat(now)):
            logger.warning("Expired stale sort job for account %s", account_id)
        return self.store.get_job(account_id) or JobRecord.idle(account_id)

    def is_running(self, account_id: int) -> bool:
        return self.get(account_id).status == JOB_RUNNING

    def start(self, account_id: int) -> JobRecord:
        """Summary: Claim the account's job slot with a fresh running record.

        Importance: The conditional write fails when a live run holds the slot.
        Alternatives: Check status and then write, which races between callers.
        """

        now = self.clock()
        stamp = isoformat(now)
        job = JobRecord(
            account_id=account_id,
            status=JOB_RUNNING,
            started_at=stamp,
            heartbeat_at=stamp,
            run_id=uuid.uuid4().hex,
        )
        if not self.store.try_start_job(job, self._stale_before(now)):
            raise JobAlreadyRunning(f"A sort is already running for account {account_id}")
        logger.info("Started sort job for account %s", account_id)
        return job

    def checkpoint(self, job: JobRecord) -> JobRecord:
        updated = job.merge(heartbeat_at=isoformat(self.clock()))
        self._write(updated)
        return updated

    def complete(self, job: JobRecord) -> JobRecord:
        stamp = isoformat(self.clock())
        updated = job.merge(status=JOB_COMPLETED, completed_at=stamp, heartbeat_at=stamp)
        self._write(updated)
        logger.info(
            "Completed sort job for account %s: processed=%s labelled=%s errors=%s",
            job.account_id,
            updated.processed,
            updated.labelled,
            updated.errors,
        )
        return updated

    def fail(self, job: JobRecord, message: str) -> JobRecord:
        stamp = isoformat(self.clock())
        updated = job.merge(status=JOB_ERROR, completed_at=stamp, heartbeat_at=stamp, last_error=message)
        self._write(updated)
        logger.error("Sort job failed for account %s: %s", job.account_id, message)
        return updated

    def reset(self, account_id: int, purge: bool = False) -> JobRecord:
        """Summary: Force the job record back to idle, optionally purging ingested data.

        Importance: Lets users restart from scratch after errors or taxonomy changes.
        Alternatives: Require manual database cleanup.
        """

        if purge:
            deleted = self.store.purge_account_data(account_id)
            logger.info("Purged %s messages for account %s", deleted, account_id)
        job = JobRecord(account_id=account_id, status=JOB_IDLE)
        self.store.save_job(job)
        return job

    def _write(self, job: JobRecord) -> None:
        if not self.store.update_running_job(job):
            raise JobSuperseded(f"Sort run {job.run_id} for account {job.account_id} was reset or taken over")

    def _stale_before(self, now: datetime) -> str:
        return isoformat(now - timedelta(seconds=self.stale_after_seconds))
