"""Summary: Credential provider that yields live mail clients per account.

Importance: Hides token decryption and refresh from the pipeline.
Alternatives: Let google-auth refresh credentials lazily inside each request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from triageflow.config import AppConfig
from triageflow.errors import ReauthenticationRequired
from triageflow.gmail import GmailClient, MailClient
from triageflow.oauth import TokenRefreshError, refresh_oauth_token
from triageflow.storage.sqlite_store import SqliteStore
from triageflow.token_codec import TokenCodec, TokenDecodeError


logger = logging.getLogger(__name__)

REFRESH_MARGIN = timedelta(minutes=5)
FALLBACK_LIFETIME = timedelta(hours=1)
REAUTH_MESSAGE = "Failed to refresh Google access token. User must re-authenticate."


def needs_refresh(expires_at: str | None, now: datetime | None = None) -> bool:
    """Summary: Decide whether an access token must be refreshed before use.

    Importance: Missing, unparsable, or nearly expired tokens are refreshed up front.
    Alternatives: Refresh reactively after a 401 from the provider.
    """

    if not expires_at:
        return True
    try:
        expiry = datetime.fromisoformat(expires_at)
    except ValueError:
        return True
    if expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=timezone.utc)
    current = now or datetime.now(timezone.utc)
    return expiry - current < REFRESH_MARGIN


@dataclass(frozen=True)
class CredentialProvider:
    """Summary: Builds authenticated mail clients from stored, encrypted tokens.

    Importance: Keeps long-running bulk sorts authenticated across token expiry.
    Alternatives: Store plaintext tokens and refresh in the client.
    """

    store: SqliteStore
    codec: TokenCodec
    config: AppConfig
    client_factory: Callable[[str], MailClient] = GmailClient

    def get_client(self, account_id: int) -> MailClient:
        """Summary: Return a mail client with a valid access token.

        Importance: Refreshes and persists the access token when it is near expiry.
        Alternatives: Return credentials and let callers build clients.
        """

        token = self.store.get_oauth_token(account_id)
        if token is None:
            raise ReauthenticationRequired(f"No stored credentials for account {account_id}")
        if not needs_refresh(token.expires_at):
            try:
                return self.client_factory(self.codec.decode(token.access_token))
            except TokenDecodeError as exc:
                logger.warning("Stored access token unreadable for account %s, refreshing", account_id)
                if not token.refresh_token:
                    raise ReauthenticationRequired(REAUTH_MESSAGE) from exc
        if not token.refresh_token:
            raise ReauthenticationRequired(REAUTH_MESSAGE)
        try:
            refresh_token = self.codec.decode(token.refresh_token)
            result = refresh_oauth_token(self.config, refresh_token)
        except (TokenDecodeError, TokenRefreshError, ValueError) as exc:
            logger.error("Token refresh failed for account %s: %s", account_id, exc)
            raise ReauthenticationRequired(REAUTH_MESSAGE) from exc
        expires_at = result.expires_at or (datetime.now(timezone.utc) + FALLBACK_LIFETIME).isoformat()
        self.store.update_access_token(account_id, self.codec.encode(result.access_token), expires_at)
        logger.info("Refreshed access token for account %s", account_id)
        return self.client_factory(result.access_token)

    def store_tokens(
        self,
        account_id: int,
        access_token: str,
        refresh_token: str | None,
        expires_at: str | None,
        provider: str = "google",
    ) -> None:
        """Summary: Encrypt and persist tokens obtained from an OAuth grant.

        Importance: Tokens never touch the database in plaintext.
        Alternatives: Delegate storage to a secrets manager.
        """

        self.store.upsert_oauth_token(
            account_id,
            provider,
            self.codec.encode(access_token),
            self.codec.encode(refresh_token) if refresh_token else None,
            expires_at,
        )
