"""Summary: Application factory wiring core services.

Importance: Centralizes dependency creation for the CLI and API layers.
Alternatives: Instantiate services manually in each entrypoint.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from triageflow.ai import AiProvider, AiProviderFactory
from triageflow.classifier import MessageClassifier
from triageflow.config import AppConfig
from triageflow.credentials import CredentialProvider
from triageflow.gmail import GmailClient, MailClient
from triageflow.jobs import JobStateStore
from triageflow.pipeline import ClientSource, SortOrchestrator
from triageflow.ratelimit import RateLimiter, build_rate_limiter
from triageflow.services import AccountService, SortService
from triageflow.storage.sqlite_store import SqliteStore
from triageflow.token_codec import TokenCodec


@dataclass(frozen=True)
class AppContext:
    """Summary: Shared application context for the sort services.

    Importance: Reuses storage, limiter, and providers across requests and commands.
    Alternatives: Rebuild dependencies for every request.
    """

    config: AppConfig
    store: SqliteStore
    rate_limiter: RateLimiter
    accounts: AccountService
    sorting: SortService


def build_context(
    config: AppConfig,
    ai_provider: AiProvider | None = None,
    client_factory: Callable[[str], MailClient] = GmailClient,
    client_source: ClientSource | None = None,
) -> AppContext:
    """Summary: Build the shared context from configuration.

    Importance: Tests and the fixture command swap in mock providers and mailboxes here.
    Alternatives: Use a dependency injection container.
    """

    store = SqliteStore(config.db_path)
    store.initialize()
    rate_limiter = build_rate_limiter(config, store)
    credentials = CredentialProvider(
        store=store,
        codec=TokenCodec(config.token_secret),
        config=config,
        client_factory=client_factory,
    )
    classifier = MessageClassifier(
        ai_provider=ai_provider or AiProviderFactory(config).build(),
        rate_limiter=rate_limiter,
    )
    jobs = JobStateStore(store=store, stale_after_seconds=config.job_stale_after_seconds)
    orchestrator = SortOrchestrator(
        store=store,
        credentials=client_source or credentials,
        classifier=classifier,
        jobs=jobs,
        batch_size=config.batch_size,
        pool_size=config.pool_size,
        label_threshold=config.label_confidence_threshold,
        max_messages=config.bulk_max_messages,
        pacing_seconds=config.classifier_pacing_ms / 1000,
    )
    return AppContext(
        config=config,
        store=store,
        rate_limiter=rate_limiter,
        accounts=AccountService(store=store, credentials=credentials),
        sorting=SortService(store=store, jobs=jobs, orchestrator=orchestrator, config=config),
    )
