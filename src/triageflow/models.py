"""Summary: Domain model dataclasses for TriageFlow.

Importance: Defines the core entities shared across the pipeline, services, and storage.
Alternatives: Use Pydantic models or ORM classes directly.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from typing import Any


CATEGORIES = ("urgent", "personal", "business", "invoices", "newsletters", "spam")
UNKNOWN_CATEGORY = "unknown"
ALL_CATEGORIES = CATEGORIES + (UNKNOWN_CATEGORY,)

SOURCE_AI = "ai"
SOURCE_RULES = "rules"

JOB_IDLE = "idle"
JOB_RUNNING = "running"
JOB_COMPLETED = "completed"
JOB_ERROR = "error"
RUN_SUPERSEDED = "superseded"

PLANS = ("free", "starter", "pro", "business")


@dataclass(frozen=True)
class Message:
    """Summary: Mail metadata for a single remote message.

    Importance: Core unit flowing through fetch, classification, and labelling.
    Alternatives: Pass raw provider payloads between pipeline stages.
    """

    remote_message_id: str
    thread_id: str
    sender: str
    recipients: tuple[str, ...]
    subject: str
    snippet: str
    received_at: datetime
    is_read: bool = False
    cc: tuple[str, ...] = ()
    labels: tuple[str, ...] = ()


@dataclass(frozen=True)
class Classification:
    """Summary: Outcome of classifying a message.

    Importance: Carries category, confidence, and provenance to persistence and labelling.
    Alternatives: Store only the category string.
    """

    category: str
    confidence: float
    rationale: str
    source: str


@dataclass(frozen=True)
class Account:
    """Summary: A connected mail account and its subscription tier.

    Importance: Scopes data ownership and gates access to bulk runs.
    Alternatives: Derive entitlements from an external billing service per call.
    """

    id: int
    email: str
    display_name: str
    plan: str
    is_onboarded: bool
    last_sync_at: str | None


@dataclass(frozen=True)
class JobRecord:
    """Summary: Progress and status of a bulk sort run for one account.

    Importance: Enables progress polling, single-flight checks, and crash recovery.
    Alternatives: Keep progress only in memory for the lifetime of the run.
    """

    account_id: int
    status: str = JOB_IDLE
    started_at: str | None = None
    completed_at: str | None = None
    total_messages: int = 0
    processed: int = 0
    labelled: int = 0
    errors: int = 0
    current_batch: int = 0
    total_batches: int = 0
    last_error: str | None = None
    heartbeat_at: str | None = None
    run_id: str | None = None

    def merge(self, **patch: Any) -> "JobRecord":
        """Summary: Return a copy with the given fields replaced.

        Importance: Keeps job updates whole-record so partial writes never mix states.
        Alternatives: Update individual columns in place.
        """

        return replace(self, **patch)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @staticmethod
    def idle(account_id: int) -> "JobRecord":
        return JobRecord(account_id=account_id)


@dataclass
class RunSummary:
    """Summary: Aggregate counters returned by a pipeline run.

    Importance: Gives callers the outcome without reading the job record.
    Alternatives: Return only the final job record.
    """

    account_id: int
    status: str = JOB_IDLE
    candidates: int = 0
    new_messages: int = 0
    processed: int = 0
    labelled: int = 0
    errors: int = 0
    skipped: int = 0
    label_failures: int = 0
    label_cache_hits: int = 0
    label_cache_misses: int = 0
    classifications: dict[str, Classification] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("classifications")
        return data
