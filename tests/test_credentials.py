"""Summary: Tests for the credential provider.

Importance: Long bulk runs depend on transparent access token refresh.
Alternatives: Require users to reconnect whenever a token expires.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from triageflow.config import AppConfig
from triageflow.credentials import CredentialProvider, needs_refresh
from triageflow.errors import ReauthenticationRequired
from triageflow.gmail import MailClient, MockMailClient
from triageflow.oauth import OAuthTokenResult, TokenRefreshError
from triageflow.storage.sqlite_store import SqliteStore
from triageflow.token_codec import TokenCodec


def _build_config(db_path: str) -> AppConfig:
    return AppConfig(
        db_path=db_path,
        ai_provider="mock",
        openai_api_key=None,
        openai_model="gpt-4o-mini",
        ollama_url="http://localhost:11434",
        ollama_model="llama3",
        api_host="127.0.0.1",
        api_port=8000,
        api_key="",
        cron_secret="",
        google_client_id="google-client",
        google_client_secret="google-secret",
        google_token_url="https://oauth2.googleapis.com/token",
        token_secret="secret",
    )


def _provider(tmp_path: Path, seen_tokens: list[str]) -> tuple[CredentialProvider, SqliteStore, int]:
    config = _build_config(str(tmp_path / "test.db"))
    store = SqliteStore(config.db_path)
    store.initialize()
    account_id = store.ensure_account("owner@example.com", "Owner", "pro", True)

    def factory(token: str) -> MailClient:
        seen_tokens.append(token)
        return MockMailClient()

    provider = CredentialProvider(store=store, codec=TokenCodec("secret"), config=config, client_factory=factory)
    return provider, store, account_id


def test_needs_refresh_window() -> None:
    now = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)
    assert needs_refresh(None, now)
    assert needs_refresh("not-a-date", now)
    assert needs_refresh((now + timedelta(minutes=4)).isoformat(), now)
    assert not needs_refresh((now + timedelta(minutes=30)).isoformat(), now)
    assert not needs_refresh("2026-10-01T12:30:00", now)


def test_valid_token_is_used_without_refresh(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def _unexpected(*_args: object, **_kwargs: object) -> OAuthTokenResult:
        raise AssertionError("refresh should not be called")

    monkeypatch.setattr("triageflow.credentials.refresh_oauth_token", _unexpected)
    seen: list[str] = []
    provider, _store, account_id = _provider(tmp_path, seen)
    expires_at = (datetime.now(timezone.utc) + timedelta(hours=1)).isoformat()
    provider.store_tokens(account_id, "access", "refresh", expires_at)
    provider.get_client(account_id)
    assert seen == ["access"]


def test_expired_token_is_refreshed_and_persisted(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Summary: Refresh tokens when they are expired.

    Importance: Ensures the refresh flow updates encrypted access tokens in storage.
    Alternatives: Require manual OAuth re-authentication.
    """

    def _fake_refresh(_config: AppConfig, refresh_token: str) -> OAuthTokenResult:
        assert refresh_token == "refresh"
        return OAuthTokenResult(
            access_token="new-access",
            refresh_token=None,
            expires_at=None,
            token_type="Bearer",
            raw={"access_token": "new-access"},
        )

    monkeypatch.setattr("triageflow.credentials.refresh_oauth_token", _fake_refresh)
    seen: list[str] = []
    provider, store, account_id = _provider(tmp_path, seen)
    provider.store_tokens(account_id, "access", "refresh", "2000-01-01T00:00:00+00:00")
    provider.get_client(account_id)
    stored = store.get_oauth_token(account_id)
    assert seen == ["new-access"]
    assert stored is not None
    assert TokenCodec("secret").decode(stored.access_token) == "new-access"
    expiry = datetime.fromisoformat(stored.expires_at or "")
    assert timedelta(minutes=55) < expiry - datetime.now(timezone.utc) <= timedelta(hours=1)


def test_refresh_failure_requires_reauthentication(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def _failing_refresh(*_args: object, **_kwargs: object) -> OAuthTokenResult:
        raise TokenRefreshError("invalid_grant")

    monkeypatch.setattr("triageflow.credentials.refresh_oauth_token", _failing_refresh)
    provider, _store, account_id = _provider(tmp_path, [])
    provider.store_tokens(account_id, "access", "refresh", None)
    with pytest.raises(ReauthenticationRequired, match="must re-authenticate"):
        provider.get_client(account_id)


def test_missing_tokens_require_reauthentication(tmp_path: Path) -> None:
    provider, _store, account_id = _provider(tmp_path, [])
    with pytest.raises(ReauthenticationRequired):
        provider.get_client(account_id)
    provider.store_tokens(account_id, "access", None, None)
    with pytest.raises(ReauthenticationRequired):
        provider.get_client(account_id)
