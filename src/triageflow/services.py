"""Summary: Core application services for TriageFlow.

Importance: Enforces entitlements and single-flight rules in front of the sort pipeline.
Alternatives: Build a full service layer with dependency injection framework.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any

from triageflow.config import AppConfig
from triageflow.credentials import CredentialProvider
from triageflow.errors import AccountNotFound, MessageNotFound, NotEntitled
from triageflow.jobs import JobStateStore
from triageflow.models import CATEGORIES, JOB_ERROR, PLANS, Account, JobRecord, RunSummary
from triageflow.pipeline import SortOrchestrator
from triageflow.storage.sqlite_store import SqliteStore


logger = logging.getLogger(__name__)

PLAN_MESSAGE_LIMITS = {"free": 0, "starter": 25, "pro": 50, "business": 100}


@dataclass(frozen=True)
class AccountService:
    """Summary: Manages connected mail accounts and their stored credentials.

    Importance: Provides the account and token records the pipeline consumes.
    Alternatives: Use an external identity provider.
    """

    store: SqliteStore
    credentials: CredentialProvider

    def register(self, email: str, display_name: str, plan: str = "free", onboarded: bool = False) -> int:
        """Summary: Create or update an account.

        Importance: Plans gate bulk and scheduled runs, so unknown plans are rejected.
        Alternatives: Accept any plan string and resolve entitlements later.
        """

        if plan not in PLANS:
            raise ValueError(f"Unknown plan {plan!r}; expected one of {', '.join(PLANS)}")
        account_id = self.store.ensure_account(email, display_name, plan, onboarded)
        logger.info("Registered account %s on plan %s", account_id, plan)
        return account_id

    def get(self, account_id: int) -> Account:
        account = self.store.get_account(account_id)
        if account is None:
            raise AccountNotFound(f"Account {account_id} not found")
        return account

    def store_tokens(
        self,
        account_id: int,
        access_token: str,
        refresh_token: str | None,
        expires_at: str | None,
    ) -> None:
        self.get(account_id)
        self.credentials.store_tokens(account_id, access_token, refresh_token, expires_at)
        logger.info("Stored OAuth tokens for account %s", account_id)


@dataclass(frozen=True)
class SortService:
    """Summary: Entry points for bulk sorts, scheduled runs, relabelling, and feedback.

    Importance: Shared by the HTTP API and the CLI so both enforce the same rules.
    Alternatives: Duplicate checks in each surface.
    """

    store: SqliteStore
    jobs: JobStateStore
    orchestrator: SortOrchestrator
    config: AppConfig

    def trigger_bulk(self, account_id: int) -> JobRecord:
        """Summary: Claim a bulk run for an entitled account.

        Importance: Raises NotEntitled or JobAlreadyRunning before any work is scheduled.
        Alternatives: Schedule first and let the run reject itself.
        """

        account = self._account(account_id)
        if account.plan not in self.config.bulk_plans:
            raise NotEntitled(f"Plan {account.plan!r} does not include a full mailbox sort")
        return self.jobs.start(account_id)

    async def sort_all(self, account_id: int) -> RunSummary:
        """Summary: Claim and run a bulk sort to completion in the caller's event loop.

        Importance: Used by the CLI where there is no background task runner.
        Alternatives: Always run bulk sorts in a background worker.
        """

        job = self.trigger_bulk(account_id)
        return await self.orchestrator.run_bulk(account_id, job)

    def get_progress(self, account_id: int) -> JobRecord:
        self._account(account_id)
        return self.jobs.get(account_id)

    def reset(self, account_id: int, purge: bool = False) -> JobRecord:
        self._account(account_id)
        return self.jobs.reset(account_id, purge=purge)

    async def process_all(self) -> list[dict[str, Any]]:
        """Summary: Run an incremental sort for every eligible account.

        Importance: One failing account never stops the scheduled run for the others.
        Alternatives: Fan out one scheduled job per account.
        """

        plans = [plan for plan, limit in PLAN_MESSAGE_LIMITS.items() if limit > 0]
        results: list[dict[str, Any]] = []
        for account in self.store.list_sync_accounts(plans):
            if self.jobs.is_running(account.id):
                logger.info("Skipping account %s, bulk sort in progress", account.id)
                results.append({"account_id": account.id, "status": "skipped"})
                continue
            limit = PLAN_MESSAGE_LIMITS[account.plan]
            try:
                summary = await self.orchestrator.run_incremental(account.id, account.last_sync_at, limit)
            except Exception as exc:
                logger.error("Incremental sort failed for account %s: %s", account.id, exc)
                results.append({"account_id": account.id, "status": JOB_ERROR, "error": str(exc)})
                continue
            results.append(summary.to_dict())
        return results

    async def relabel(self, account_id: int) -> RunSummary:
        self._account(account_id)
        return await self.orchestrator.relabel(account_id)

    def apply_feedback(
        self,
        account_id: int,
        remote_message_id: str,
        category: str,
        comment: str | None = None,
    ) -> dict[str, Any]:
        """Summary: Overwrite a message's category with a user correction.

        Importance: Corrections are recorded and the label is re-applied on the next relabel.
        Alternatives: Store corrections without changing the message.
        """

        if category not in CATEGORIES:
            raise ValueError(f"Unknown category {category!r}")
        self._account(account_id)
        message = self.store.find_message_by_remote_id(remote_message_id)
        if message is None or message.account_id != account_id:
            raise MessageNotFound(f"Message {remote_message_id} not found")
        if message.category == category:
            return {"changed": False, "category": category}
        feedback_id = self.store.record_feedback(
            account_id,
            message.id,
            message.category,
            category,
            comment.strip() if comment and comment.strip() else None,
        )
        self.store.update_message(message.id, category=category, confidence=1.0, is_labelled=False)
        logger.info("Recorded feedback %s for account %s", feedback_id, account_id)
        return {
            "changed": True,
            "feedback_id": feedback_id,
            "original_category": message.category,
            "category": category,
        }

    def _account(self, account_id: int) -> Account:
        account = self.store.get_account(account_id)
        if account is None:
            raise AccountNotFound(f"Account {account_id} not found")
        return account
