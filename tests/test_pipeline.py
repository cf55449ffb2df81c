"""Summary: Tests for the batch orchestrator.

Importance: Covers batching, checkpoints, idempotency, partial failures, and fatal errors.
Alternatives: Exercise the pipeline only through the HTTP API.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

from triageflow.ai import MockAiProvider
from triageflow.classifier import MessageClassifier
from triageflow.cli import FixtureClientSource
from triageflow.errors import ReauthenticationRequired
from triageflow.gmail import MailClient, MockMailClient
from triageflow.jobs import JobStateStore
from triageflow.models import JobRecord, Message
from triageflow.pipeline import SortOrchestrator
from triageflow.storage.sqlite_store import SqliteStore


BASE_TIME = datetime(2024, 1, 15, 8, 0, tzinfo=timezone.utc)


def _responder(_system: str, user: str) -> str:
    if "Subject: Invoice" in user:
        return '{"category": "invoices", "confidence": 0.9, "reason": "Invoice attached"}'
    if "Subject: Maybe" in user:
        return '{"category": "business", "confidence": 0.3, "reason": "Unclear"}'
    return '{"category": "business", "confidence": 0.8, "reason": "Project mail"}'


def _message(index: int, subject: str | None = None, received_at: datetime | None = None) -> Message:
    return Message(
        remote_message_id=f"m-{index}",
        thread_id=f"t-{index}",
        sender="Alice <alice@acme.io>",
        recipients=("me@example.com",),
        subject=subject or ("Invoice for order" if index % 2 else "Project update"),
        snippet="Details inside",
        received_at=received_at or BASE_TIME + timedelta(minutes=index),
    )


class _Harness:
    def __init__(
        self,
        tmp_path: Path,
        messages: list[Message],
        source: object | None = None,
        responder: Callable[[str, str], str] = _responder,
    ) -> None:
        self.store = SqliteStore(str(tmp_path / "test.db"))
        self.store.initialize()
        self.account_id = self.store.ensure_account("owner@example.com", "Owner", "pro", True)
        self.client = MockMailClient(messages)
        self.provider = MockAiProvider(responder=responder)
        self.jobs = JobStateStore(store=self.store)
        self.orchestrator = SortOrchestrator(
            store=self.store,
            credentials=source or FixtureClientSource(self.client),
            classifier=MessageClassifier(ai_provider=self.provider),
            jobs=self.jobs,
            batch_size=20,
            pool_size=5,
            pacing_seconds=0,
        )


class _ReauthSource:
    def get_client(self, account_id: int) -> MailClient:
        raise ReauthenticationRequired("Failed to refresh Google access token. User must re-authenticate.")


def test_bulk_run_processes_batches_and_checkpoints(tmp_path: Path) -> None:
    """Summary: Verify 23 new messages run as two batches with a checkpoint after each.

    Importance: Progress polling reads these checkpoints while the run is active.
    Alternatives: Only report progress at the end.
    """

    harness = _Harness(tmp_path, [_message(index) for index in range(23)])
    checkpoints: list[JobRecord] = []
    summary = asyncio.run(harness.orchestrator.run_bulk(harness.account_id, on_checkpoint=checkpoints.append))

    assert [job.current_batch for job in checkpoints] == [1, 2]
    first = checkpoints[0]
    assert (first.status, first.total_batches, first.total_messages, first.processed) == ("running", 2, 23, 20)
    assert summary.status == "completed"
    assert (summary.new_messages, summary.processed, summary.labelled, summary.errors) == (23, 23, 23, 0)
    assert summary.label_cache_misses == 2
    assert summary.label_cache_hits == 21

    job = harness.jobs.get(harness.account_id)
    assert job.status == "completed"
    assert (job.processed, job.labelled, job.current_batch) == (23, 23, 2)
    assert harness.store.count_messages(harness.account_id) == 23
    assert sorted(harness.client.created_labels) == ["TriageFlow/Business", "TriageFlow/Invoices"]
    assert len(harness.client.applied) == 23
    account = harness.store.get_account(harness.account_id)
    assert account is not None and account.last_sync_at is not None


def test_rerun_is_idempotent(tmp_path: Path) -> None:
    """Summary: Verify a second run classifies nothing already recorded.

    Importance: Users may re-trigger a sort without double labelling or AI spend.
    Alternatives: Reprocess and overwrite prior results.
    """

    harness = _Harness(tmp_path, [_message(index) for index in range(5)])
    asyncio.run(harness.orchestrator.run_bulk(harness.account_id))
    calls = len(harness.provider.calls)
    second = asyncio.run(harness.orchestrator.run_bulk(harness.account_id))
    assert second.status == "completed"
    assert (second.candidates, second.new_messages, second.processed) == (5, 0, 0)
    assert len(harness.provider.calls) == calls
    assert harness.store.count_messages(harness.account_id) == 5


def test_empty_mailbox_completes_without_ai_calls(tmp_path: Path) -> None:
    harness = _Harness(tmp_path, [])
    summary = asyncio.run(harness.orchestrator.run_bulk(harness.account_id))
    job = harness.jobs.get(harness.account_id)
    assert summary.status == "completed"
    assert harness.provider.calls == []
    assert (job.status, job.total_batches, job.processed) == ("completed", 0, 0)


def test_message_failures_are_counted_not_fatal(tmp_path: Path) -> None:
    """Summary: Verify one bad message does not stop the others.

    Importance: Fetch failures count as errors and label failures leave messages for relabel.
    Alternatives: Abort the batch on first failure.
    """

    harness = _Harness(tmp_path, [_message(index, subject="Project update") for index in range(6)])
    harness.client.fail_get = {"m-2"}
    harness.client.fail_apply = {"m-4"}
    summary = asyncio.run(harness.orchestrator.run_bulk(harness.account_id))

    assert summary.status == "completed"
    assert (summary.processed, summary.errors, summary.labelled, summary.label_failures) == (5, 1, 4, 1)
    job = harness.jobs.get(harness.account_id)
    assert (job.status, job.errors, job.processed) == ("completed", 1, 5)

    harness.client.fail_apply = set()
    relabel = asyncio.run(harness.orchestrator.relabel(harness.account_id))
    assert (relabel.candidates, relabel.labelled) == (1, 1)
    assert harness.store.list_unlabelled(harness.account_id, 0.6) == []


def test_low_confidence_messages_are_stored_but_not_labelled(tmp_path: Path) -> None:
    harness = _Harness(tmp_path, [_message(0, subject="Maybe later"), _message(1, subject="Project update")])
    summary = asyncio.run(harness.orchestrator.run_bulk(harness.account_id))
    assert (summary.processed, summary.labelled) == (2, 1)
    assert "m-0" not in harness.client.applied
    stored = harness.store.find_message_by_remote_id("m-0")
    assert stored is not None and stored.confidence == 0.3 and not stored.is_labelled


def test_fatal_error_marks_job_failed(tmp_path: Path) -> None:
    """Summary: Verify credential failures end the run in error.

    Importance: Users see the re-authentication message in progress polling.
    Alternatives: Leave the job running until it goes stale.
    """

    harness = _Harness(tmp_path, [_message(0)], source=_ReauthSource())
    summary = asyncio.run(harness.orchestrator.run_bulk(harness.account_id))
    job = harness.jobs.get(harness.account_id)
    assert summary.status == "error"
    assert job.status == "error"
    assert job.last_error is not None and "re-authenticate" in job.last_error


def test_fatal_error_keeps_checkpointed_counters(tmp_path: Path) -> None:
    harness = _Harness(tmp_path, [_message(index) for index in range(25)])

    def _crash(job: JobRecord) -> None:
        raise RuntimeError("worker lost")

    summary = asyncio.run(harness.orchestrator.run_bulk(harness.account_id, on_checkpoint=_crash))
    job = harness.jobs.get(harness.account_id)
    assert summary.status == "error"
    assert (job.status, job.last_error) == ("error", "worker lost")
    assert (job.current_batch, job.processed, job.total_batches) == (1, 20, 2)


def test_incremental_run_only_fetches_new_mail(tmp_path: Path) -> None:
    """Summary: Verify scheduled runs pick up mail received after the last sync.

    Importance: Keeps mailboxes current without a job record or full scan.
    Alternatives: Re-list the whole inbox on every schedule tick.
    """

    harness = _Harness(tmp_path, [_message(index) for index in range(3)])
    asyncio.run(harness.orchestrator.run_bulk(harness.account_id))
    account = harness.store.get_account(harness.account_id)
    assert account is not None
    harness.client.add_message(
        _message(10, subject="Project kickoff", received_at=datetime.now(timezone.utc) + timedelta(minutes=5))
    )
    summary = asyncio.run(harness.orchestrator.run_incremental(harness.account_id, account.last_sync_at, 50))
    assert (summary.candidates, summary.new_messages, summary.processed, summary.labelled) == (1, 1, 1, 1)
    assert harness.jobs.get(harness.account_id).status == "completed"
    assert "m-10" in harness.client.applied


def test_classifier_failure_for_one_message_falls_back(tmp_path: Path) -> None:
    """Summary: Verify an AI failure for one message leaves the other on the AI path.

    Importance: A provider error degrades one result to rules instead of aborting the batch.
    Alternatives: Retry the failed message later.
    """

    def _flaky(system: str, user: str) -> str:
        if "Subject: Boom" in user:
            raise RuntimeError("provider timeout")
        return _responder(system, user)

    harness = _Harness(
        tmp_path, [_message(0, subject="Boom"), _message(1, subject="Project update")], responder=_flaky
    )
    summary = asyncio.run(harness.orchestrator.run_bulk(harness.account_id))
    assert summary.status == "completed"
    assert summary.classifications["m-0"].source == "rules"
    assert summary.classifications["m-1"].source == "ai"
    assert (summary.processed, summary.errors) == (2, 0)


def test_rerun_leaves_existing_records_unchanged(tmp_path: Path) -> None:
    replies = {"reply": ""}

    def _switchable(system: str, user: str) -> str:
        return replies["reply"] or _responder(system, user)

    harness = _Harness(
        tmp_path, [_message(0, subject="Maybe later"), _message(1, subject="Project update")], responder=_switchable
    )
    asyncio.run(harness.orchestrator.run_bulk(harness.account_id))
    before = [harness.store.find_message_by_remote_id(remote_id) for remote_id in ("m-0", "m-1")]
    replies["reply"] = '{"category": "spam", "confidence": 0.99}'
    asyncio.run(harness.orchestrator.run_bulk(harness.account_id))
    after = [harness.store.find_message_by_remote_id(remote_id) for remote_id in ("m-0", "m-1")]
    assert after == before


def test_reset_and_restart_mid_run_stops_the_old_run(tmp_path: Path) -> None:
    """Summary: Verify a run reset during a checkpoint stops without touching the new job.

    Importance: A forced reset followed by a new trigger must leave only the new run's record.
    Alternatives: Let the old run finish and overwrite the record.
    """

    harness = _Harness(tmp_path, [_message(index) for index in range(45)])
    restarted: list[JobRecord] = []

    def _reset_and_restart(job: JobRecord) -> None:
        if not restarted:
            harness.jobs.reset(harness.account_id)
            restarted.append(harness.jobs.start(harness.account_id))

    summary = asyncio.run(harness.orchestrator.run_bulk(harness.account_id, on_checkpoint=_reset_and_restart))
    final = harness.jobs.get(harness.account_id)
    assert summary.status == "superseded"
    assert final.run_id == restarted[0].run_id
    assert final.started_at == restarted[0].started_at
    assert (final.status, final.processed, final.current_batch) == ("running", 0, 0)
    assert harness.store.count_messages(harness.account_id) == 40


class _RotatingSource:
    """Hands out a fresh mailbox client on every call, as a token refresh would."""

    def __init__(self, messages: list[Message]) -> None:
        self.messages = messages
        self.clients: list[MockMailClient] = []

    def get_client(self, account_id: int) -> MailClient:
        client = MockMailClient(self.messages)
        self.clients.append(client)
        return client


def test_client_is_reacquired_when_token_expires_between_batches(tmp_path: Path) -> None:
    """Summary: Verify each batch gets a client from the credential source.

    Importance: Long bulk runs outlive a single access token.
    Alternatives: Reuse the first client for the whole run.
    """

    messages = [_message(index) for index in range(23)]
    source = _RotatingSource(messages)
    harness = _Harness(tmp_path, messages, source=source)

    def _expire(job: JobRecord) -> None:
        source.clients[-1].revoked = True

    summary = asyncio.run(harness.orchestrator.run_bulk(harness.account_id, on_checkpoint=_expire))
    assert summary.status == "completed"
    assert (summary.processed, summary.labelled, summary.errors) == (23, 23, 0)
    assert len(source.clients) == 2
    assert len(source.clients[0].applied) == 20
    assert len(source.clients[1].applied) == 3


def test_rejected_token_mid_run_fails_the_job(tmp_path: Path) -> None:
    """Summary: Verify a revoked token during a batch ends the run in error.

    Importance: Authentication failures are fatal instead of counting every message as an error.
    Alternatives: Count each rejected request as a per-message error.
    """

    harness = _Harness(tmp_path, [_message(index) for index in range(23)])

    def _revoke(job: JobRecord) -> None:
        harness.client.revoked = True

    summary = asyncio.run(harness.orchestrator.run_bulk(harness.account_id, on_checkpoint=_revoke))
    job = harness.jobs.get(harness.account_id)
    assert summary.status == "error"
    assert summary.errors == 0
    assert (job.status, job.processed, job.last_error) == ("error", 20, "Access token expired")
