"""Summary: OAuth helper utilities for the Google mail integration.

Importance: Builds authorization URLs and refreshes access tokens without extra dependencies.
Alternatives: Use google-auth-oauthlib flows for every token operation.
"""

from __future__ import annotations

import json
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
import urllib.error
import urllib.parse
import urllib.request

from triageflow.config import AppConfig


GOOGLE_SCOPES = (
    "https://www.googleapis.com/auth/gmail.modify "
    "https://www.googleapis.com/auth/gmail.labels "
    "https://www.googleapis.com/auth/userinfo.email"
)


class TokenRefreshError(RuntimeError):
    """Raised when the token endpoint rejects a refresh request."""


@dataclass(frozen=True)
class OAuthTokenResult:
    """Summary: Normalized OAuth token response data.

    Importance: Provides a consistent token representation for storage and refresh logic.
    Alternatives: Store the raw provider response without normalization.
    """

    access_token: str
    refresh_token: str | None
    expires_at: str | None
    token_type: str | None
    raw: dict[str, Any]

    @staticmethod
    def from_response(payload: dict[str, Any]) -> "OAuthTokenResult":
        """Summary: Build an OAuthTokenResult from a provider payload.

        Importance: Normalizes expiry and optional fields across responses.
        Alternatives: Use provider-specific token response classes.
        """

        if not payload.get("access_token"):
            raise TokenRefreshError("Token response did not include an access token")
        expires_in = payload.get("expires_in")
        expires_at = None
        if isinstance(expires_in, (int, float)) and expires_in > 0:
            expires_at = (datetime.now(timezone.utc) + timedelta(seconds=expires_in)).isoformat()
        return OAuthTokenResult(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            expires_at=expires_at,
            token_type=payload.get("token_type"),
            raw=payload,
        )


def create_state_token() -> str:
    """Summary: Generate a CSRF state token.

    Importance: Protects OAuth flows from CSRF attacks.
    Alternatives: Use server-side session storage with pre-generated tokens.
    """

    return secrets.token_urlsafe(24)


def build_google_auth_url(config: AppConfig, redirect_uri: str, state: str) -> str:
    """Summary: Build a Google OAuth authorization URL with offline access.

    Importance: Offline access with forced consent guarantees a refresh token.
    Alternatives: Use a different OAuth helper library.
    """

    params = {
        "client_id": config.google_client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "access_type": "offline",
        "prompt": "consent",
        "scope": GOOGLE_SCOPES,
        "state": state,
    }
    return "https://accounts.google.com/o/oauth2/v2/auth?" + urllib.parse.urlencode(params)


def refresh_oauth_token(config: AppConfig, refresh_token: str) -> OAuthTokenResult:
    """Summary: Exchange a refresh token for a new access token.

    Importance: Keeps long-running mail access alive without user interaction.
    Alternatives: Let google-auth refresh credentials implicitly on each request.
    """

    payload = _refresh_payload(config, refresh_token)
    response = _post_form(config.google_token_url, payload)
    return OAuthTokenResult.from_response(response)


def _refresh_payload(config: AppConfig, refresh_token: str) -> dict[str, str]:
    """Summary: Build token request parameters for a refresh grant.

    Importance: Ensures the refresh request carries client credentials.
    Alternatives: Assemble payloads inline inside the refresh function.
    """

    if not config.google_client_id or not config.google_client_secret:
        raise ValueError("Missing OAuth client credentials for google")
    return {
        "client_id": config.google_client_id,
        "client_secret": config.google_client_secret,
        "refresh_token": refresh_token,
        "grant_type": "refresh_token",
    }


def _post_form(url: str, payload: dict[str, str]) -> dict[str, Any]:
    """Summary: Send a form-encoded POST request and parse JSON.

    Importance: Avoids new dependencies while supporting OAuth refreshes.
    Alternatives: Use requests or a provider SDK.
    """

    data = urllib.parse.urlencode(payload).encode("utf-8")
    request = urllib.request.Request(
        url,
        data=data,
        headers={"Content-Type": "application/x-www-form-urlencoded"},
        method="POST",
    )
    try:
        with urllib.request.urlopen(request, timeout=10) as response:
            raw = response.read().decode("utf-8")
    except urllib.error.HTTPError as exc:
        error_body = exc.read().decode("utf-8")
        raise TokenRefreshError(f"Token refresh failed: {error_body or exc.reason}") from exc
    except urllib.error.URLError as exc:
        raise TokenRefreshError(f"Token endpoint unreachable: {exc.reason}") from exc
    return json.loads(raw)
