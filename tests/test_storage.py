"""Summary: Tests for SQLite storage layer.

Importance: Ensures persistence behaves as expected for core workflows.
Alternatives: Rely on manual testing for storage operations.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from triageflow.errors import DuplicateMessage
from triageflow.models import Classification, Message
from triageflow.storage.sqlite_store import SqliteStore


def _message(remote_id: str) -> Message:
    return Message(
        remote_message_id=remote_id,
        thread_id=f"t-{remote_id}",
        sender="Alice <alice@acme.io>",
        recipients=("me@example.com", "bob@acme.io"),
        cc=("carol@acme.io",),
        subject="Hello",
        snippet="Hello world",
        received_at=datetime(2026, 10, 1, 9, 30, tzinfo=timezone.utc),
    )


def _store(tmp_path: Path) -> tuple[SqliteStore, int]:
    store = SqliteStore(str(tmp_path / "test.db"))
    store.initialize()
    return store, store.ensure_account("owner@example.com", "Owner", "pro", True)


def test_store_persists_messages_once(tmp_path: Path) -> None:
    """Summary: Verify messages are saved and duplicates rejected.

    Importance: The unique remote id backs pipeline idempotency.
    Alternatives: Deduplicate only in memory.
    """

    store, account_id = _store(tmp_path)
    classification = Classification("business", 0.7, "Planning", "ai")
    message_id = store.create_message(account_id, _message("m-1"), classification)
    with pytest.raises(DuplicateMessage):
        store.create_message(account_id, _message("m-1"), classification)
    stored = store.get_message(message_id)
    assert stored is not None
    assert stored.recipients == ("me@example.com", "bob@acme.io")
    assert stored.cc == ("carol@acme.io",)
    assert stored.category == "business"
    assert not stored.is_labelled
    assert store.existing_remote_ids(account_id, ["m-1", "m-2"]) == {"m-1"}


def test_unlabelled_listing_respects_threshold(tmp_path: Path) -> None:
    store, account_id = _store(tmp_path)
    high = store.create_message(account_id, _message("m-1"), Classification("urgent", 0.9, "", "ai"))
    store.create_message(account_id, _message("m-2"), Classification("business", 0.45, "", "rules"))
    store.create_message(account_id, _message("m-3"), Classification("unknown", 0.9, "", "ai"))
    labelled = store.create_message(account_id, _message("m-4"), Classification("spam", 0.85, "", "rules"))
    store.mark_labelled([labelled])
    pending = store.list_unlabelled(account_id, 0.6)
    assert [item.id for item in pending] == [high]


def test_update_message_rejects_unknown_fields(tmp_path: Path) -> None:
    store, account_id = _store(tmp_path)
    message_id = store.create_message(account_id, _message("m-1"), Classification("business", 0.5, "", "ai"))
    store.update_message(message_id, category="invoices", confidence=1.0, is_labelled=False)
    updated = store.get_message(message_id)
    assert updated is not None and updated.category == "invoices" and updated.confidence == 1.0
    with pytest.raises(ValueError):
        store.update_message(message_id, sender="mallory@example.com")


def test_tokens_keep_refresh_token_on_regrant(tmp_path: Path) -> None:
    store, account_id = _store(tmp_path)
    store.upsert_oauth_token(account_id, "google", "enc-access", "enc-refresh", None)
    store.upsert_oauth_token(account_id, "google", "enc-access-2", None, "2026-10-01T10:00:00+00:00")
    token = store.get_oauth_token(account_id)
    assert token is not None
    assert token.access_token == "enc-access-2"
    assert token.refresh_token == "enc-refresh"


def test_sync_accounts_require_onboarding_plan_and_refresh_token(tmp_path: Path) -> None:
    """Summary: Verify eligibility filtering for scheduled runs.

    Importance: Free and unconnected accounts must not be processed.
    Alternatives: Filter accounts in the service layer.
    """

    store, pro_id = _store(tmp_path)
    free_id = store.ensure_account("free@example.com", "Free", "free", True)
    pending_id = store.ensure_account("new@example.com", "New", "starter", False)
    no_refresh_id = store.ensure_account("norefresh@example.com", "No Refresh", "business", True)
    for account_id in (pro_id, free_id, pending_id):
        store.upsert_oauth_token(account_id, "google", "access", "refresh", None)
    store.upsert_oauth_token(no_refresh_id, "google", "access", None, None)
    eligible = store.list_sync_accounts(["starter", "pro", "business"])
    assert [account.id for account in eligible] == [pro_id]
