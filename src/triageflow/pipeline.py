"""Summary: Batch orchestrator for bulk, incremental, and relabel runs.

Importance: Drives fetch, dedupe, classify, persist, label, and checkpoint with bounded concurrency.
Alternatives: Process messages one at a time in a single loop.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterable, Protocol, TypeVar

from triageflow.classifier import MessageClassifier
from triageflow.errors import DuplicateMessage, JobSuperseded, ReauthenticationRequired
from triageflow.gmail import MailClient
from triageflow.jobs import JobStateStore, isoformat, utc_now
from triageflow.labels import LabelResolver
from triageflow.models import (
    JOB_COMPLETED,
    JOB_ERROR,
    RUN_SUPERSEDED,
    UNKNOWN_CATEGORY,
    Classification,
    JobRecord,
    Message,
    RunSummary,
)
from triageflow.storage.sqlite_store import SqliteStore


logger = logging.getLogger(__name__)

INBOX_QUERY = "in:inbox"

T = TypeVar("T")


class ClientSource(Protocol):
    def get_client(self, account_id: int) -> MailClient: ...


@dataclass(frozen=True)
class LabelTarget:
    """Summary: A persisted message that qualifies for a remote label.

    Importance: Carries both ids so labelling can update the local flag.
    Alternatives: Re-read the message row before labelling.
    """

    message_id: int
    remote_message_id: str
    category: str


@dataclass(frozen=True)
class SortOrchestrator:
    """Summary: Runs the classification and labelling pipeline for one account at a time.

    Importance: Only this coroutine mutates the job record; workers just return results.
    Alternatives: Let each worker write progress directly.
    """

    store: SqliteStore
    credentials: ClientSource
    classifier: MessageClassifier
    jobs: JobStateStore
    batch_size: int = 20
    pool_size: int = 5
    label_threshold: float = 0.6
    max_messages: int = 5000
    pacing_seconds: float = 0.1

    async def run_bulk(
        self,
        account_id: int,
        job: JobRecord | None = None,
        on_checkpoint: Callable[[JobRecord], None] | None = None,
    ) -> RunSummary:
        """Summary: Sort every not-yet-recorded inbox message for an account.

        Importance: Fatal setup failures end the job in error; per-message failures only count.
        Alternatives: Abort the whole run on the first failing message.
        """

        summary = RunSummary(account_id=account_id)
        if job is None:
            job = await asyncio.to_thread(self.jobs.start, account_id)
        pool = asyncio.Semaphore(self.pool_size)
        try:
            client = await asyncio.to_thread(self.credentials.get_client, account_id)
            candidate_ids = await asyncio.to_thread(client.list_messages, INBOX_QUERY, self.max_messages)
            new_ids = await self._dedupe(account_id, candidate_ids)
            summary.candidates = len(candidate_ids)
            summary.new_messages = len(new_ids)
            total_batches = math.ceil(len(new_ids) / self.batch_size)
            job = job.merge(total_messages=len(new_ids), total_batches=total_batches)
            job = await asyncio.to_thread(self.jobs.checkpoint, job)
            logger.info(
                "Sorting account %s: %s candidates, %s new, %s batches",
                account_id,
                len(candidate_ids),
                len(new_ids),
                total_batches,
            )

            resolver = LabelResolver(self.store, client, account_id)
            for index, start in enumerate(range(0, len(new_ids), self.batch_size), start=1):
                if index > 1:
                    client = await asyncio.to_thread(self.credentials.get_client, account_id)
                    resolver.client = client
                batch_ids = new_ids[start : start + self.batch_size]
                messages = await self._fetch(client, batch_ids, pool, summary)
                results = await self._classify_pooled(messages, pool)
                await self._persist_and_label(account_id, client, resolver, messages, results, pool, summary)
                job = job.merge(
                    current_batch=index,
                    processed=summary.processed,
                    labelled=summary.labelled,
                    errors=summary.errors,
                )
                job = await asyncio.to_thread(self.jobs.checkpoint, job)
                if on_checkpoint is not None:
                    on_checkpoint(job)

            job = await asyncio.to_thread(self.jobs.complete, job)
            await asyncio.to_thread(self.store.update_last_sync, account_id, isoformat(utc_now()))
            self._record_cache(summary, resolver)
            summary.status = JOB_COMPLETED
        except JobSuperseded as exc:
            logger.warning("Bulk sort for account %s stopped, run superseded: %s", account_id, exc)
            summary.status = RUN_SUPERSEDED
        except Exception as exc:
            logger.exception("Bulk sort failed for account %s", account_id)
            summary.status = JOB_ERROR
            try:
                await asyncio.to_thread(self.jobs.fail, job, str(exc) or exc.__class__.__name__)
            except JobSuperseded:
                logger.warning("Bulk sort for account %s superseded before its failure was recorded", account_id)
                summary.status = RUN_SUPERSEDED
        return summary

    async def run_incremental(self, account_id: int, since: str | None, limit: int) -> RunSummary:
        """Summary: Sort inbox messages received after the last sync.

        Importance: Keeps a mailbox current between bulk runs without a job record.
        Alternatives: Subscribe to provider push notifications.
        """

        summary = RunSummary(account_id=account_id)
        pool = asyncio.Semaphore(self.pool_size)
        client = await asyncio.to_thread(self.credentials.get_client, account_id)
        candidate_ids = await asyncio.to_thread(client.list_messages, _since_query(since), limit)
        new_ids = await self._dedupe(account_id, candidate_ids)
        summary.candidates = len(candidate_ids)
        summary.new_messages = len(new_ids)
        resolver = LabelResolver(self.store, client, account_id)
        if new_ids:
            messages = await self._fetch(client, new_ids, pool, summary)
            results = await asyncio.to_thread(
                self.classifier.classify_batch, messages, self.pacing_seconds
            )
            await self._persist_and_label(account_id, client, resolver, messages, results, pool, summary)
        await asyncio.to_thread(self.store.update_last_sync, account_id, isoformat(utc_now()))
        self._record_cache(summary, resolver)
        summary.status = JOB_COMPLETED
        logger.info(
            "Incremental sort for account %s: %s new, %s processed, %s labelled",
            account_id,
            summary.new_messages,
            summary.processed,
            summary.labelled,
        )
        return summary

    async def relabel(self, account_id: int) -> RunSummary:
        """Summary: Apply labels to stored messages that qualify but were never labelled.

        Importance: Recovers from label failures without reclassifying anything.
        Alternatives: Reset and re-run the bulk sort.
        """

        summary = RunSummary(account_id=account_id)
        pool = asyncio.Semaphore(self.pool_size)
        client = await asyncio.to_thread(self.credentials.get_client, account_id)
        stored = await asyncio.to_thread(self.store.list_unlabelled, account_id, self.label_threshold)
        summary.candidates = len(stored)
        resolver = LabelResolver(self.store, client, account_id)
        targets = [LabelTarget(item.id, item.remote_message_id, item.category or UNKNOWN_CATEGORY) for item in stored]
        await self._label(client, resolver, targets, pool, summary)
        self._record_cache(summary, resolver)
        summary.status = JOB_COMPLETED
        return summary

    async def _dedupe(self, account_id: int, candidate_ids: list[str]) -> list[str]:
        known = await asyncio.to_thread(self.store.existing_remote_ids, account_id, candidate_ids)
        seen: set[str] = set()
        new_ids: list[str] = []
        for remote_id in candidate_ids:
            if remote_id in known or remote_id in seen:
                continue
            seen.add(remote_id)
            new_ids.append(remote_id)
        return new_ids

    async def _fetch(
        self,
        client: MailClient,
        remote_ids: list[str],
        pool: asyncio.Semaphore,
        summary: RunSummary,
    ) -> list[Message]:
        results = await _gather_bounded(pool, [_call(client.get_message, remote_id) for remote_id in remote_ids])
        messages: list[Message] = []
        for remote_id, result in zip(remote_ids, results):
            if isinstance(result, ReauthenticationRequired):
                raise result
            if isinstance(result, Exception):
                summary.errors += 1
                logger.warning("Failed to fetch message %s: %s", remote_id, result)
                continue
            messages.append(result)
        return messages

    async def _classify_pooled(
        self, messages: list[Message], pool: asyncio.Semaphore
    ) -> dict[str, Classification | Exception]:
        results = await _gather_bounded(pool, [_call(self.classifier.classify, message) for message in messages])
        return {message.remote_message_id: result for message, result in zip(messages, results)}

    async def _persist_and_label(
        self,
        account_id: int,
        client: MailClient,
        resolver: LabelResolver,
        messages: list[Message],
        results: dict[str, Any],
        pool: asyncio.Semaphore,
        summary: RunSummary,
    ) -> None:
        targets: list[LabelTarget] = []
        for message in messages:
            classification = results.get(message.remote_message_id)
            if not isinstance(classification, Classification):
                summary.errors += 1
                logger.warning("Classification failed for message %s: %s", message.remote_message_id, classification)
                continue
            try:
                message_id = await asyncio.to_thread(
                    self.store.create_message, account_id, message, classification
                )
            except DuplicateMessage:
                summary.skipped += 1
                continue
            except Exception as exc:
                summary.errors += 1
                logger.error("Failed to persist message %s: %s", message.remote_message_id, exc)
                continue
            summary.processed += 1
            summary.classifications[message.remote_message_id] = classification
            if self._qualifies(classification):
                targets.append(LabelTarget(message_id, message.remote_message_id, classification.category))
        await self._label(client, resolver, targets, pool, summary)

    async def _label(
        self,
        client: MailClient,
        resolver: LabelResolver,
        targets: list[LabelTarget],
        pool: asyncio.Semaphore,
        summary: RunSummary,
    ) -> None:
        if not targets:
            return
        results = await _gather_bounded(pool, [_call(_apply_label, client, resolver, target) for target in targets])
        labelled_ids: list[int] = []
        unauthorized: ReauthenticationRequired | None = None
        for target, result in zip(targets, results):
            if isinstance(result, ReauthenticationRequired):
                unauthorized = result
            if result is True:
                labelled_ids.append(target.message_id)
                continue
            summary.label_failures += 1
            if isinstance(result, Exception):
                logger.warning("Failed to label message %s: %s", target.remote_message_id, result)
        await asyncio.to_thread(self.store.mark_labelled, labelled_ids)
        summary.labelled += len(labelled_ids)
        if unauthorized is not None:
            raise unauthorized

    def _qualifies(self, classification: Classification) -> bool:
        return (
            classification.category != UNKNOWN_CATEGORY
            and classification.confidence >= self.label_threshold
        )

    @staticmethod
    def _record_cache(summary: RunSummary, resolver: LabelResolver) -> None:
        summary.label_cache_hits = resolver.hits
        summary.label_cache_misses = resolver.misses


def _apply_label(client: MailClient, resolver: LabelResolver, target: LabelTarget) -> bool:
    label_id = resolver.resolve(target.category)
    if label_id is None:
        return False
    client.apply_label(target.remote_message_id, label_id)
    return True


def _call(func: Callable[..., T], *args: Any) -> Callable[[], T]:
    return lambda: func(*args)


async def _gather_bounded(pool: asyncio.Semaphore, calls: Iterable[Callable[[], T]]) -> list[T | Exception]:
    """Summary: Run blocking calls in worker threads, at most pool-size at once.

    Importance: Results keep input order and failures come back as values.
    Alternatives: A ThreadPoolExecutor with map.
    """

    async def run(call: Callable[[], T]) -> T | Exception:
        async with pool:
            try:
                return await asyncio.to_thread(call)
            except Exception as exc:
                return exc

    return list(await asyncio.gather(*(run(call) for call in calls)))


def _since_query(since: str | None) -> str:
    if not since:
        return INBOX_QUERY
    try:
        moment = datetime.fromisoformat(since)
    except ValueError:
        return INBOX_QUERY
    return f"{INBOX_QUERY} after:{int(moment.timestamp())}"
