"""Summary: Mail client interface with Gmail API and in-memory implementations.

Importance: Isolates provider calls so the pipeline can run against fakes and fixtures.
Alternatives: Call the Gmail API directly from the pipeline.
"""

from __future__ import annotations

import json
import logging
import re
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from email.utils import getaddresses, parsedate_to_datetime
from pathlib import Path
from typing import Any

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from triageflow.errors import ReauthenticationRequired
from triageflow.models import Message


logger = logging.getLogger(__name__)

PAGE_SIZE = 500
METADATA_HEADERS = ["From", "To", "Cc", "Subject", "Date"]
_AFTER_RE = re.compile(r"after:(\d+)")


class MailClient(ABC):
    """Summary: Abstract interface for the mail operations the pipeline needs.

    Importance: Standardizes message discovery and labelling across providers.
    Alternatives: Use provider-specific classes directly in the pipeline.
    """

    @abstractmethod
    def list_messages(self, query: str, max_results: int) -> list[str]:
        """Summary: List message ids matching a provider query, newest first.

        Importance: Drives candidate discovery for bulk and incremental runs.
        Alternatives: Sync by history id instead of queries.
        """

    @abstractmethod
    def get_message(self, message_id: str) -> Message:
        """Summary: Fetch header metadata and snippet for one message."""

    @abstractmethod
    def list_labels(self) -> list[dict[str, str]]:
        """Summary: List remote labels as dicts with id and name."""

    @abstractmethod
    def create_label(self, name: str, color: dict[str, str]) -> str:
        """Summary: Create a visible label and return its remote id."""

    @abstractmethod
    def apply_label(self, message_id: str, label_id: str) -> None:
        """Summary: Add a label to a message."""


def _is_retryable_http_error(exc: BaseException) -> bool:
    return isinstance(exc, HttpError) and exc.resp.status in (429, 500, 503)


@retry(
    retry=retry_if_exception(_is_retryable_http_error),
    wait=wait_exponential(multiplier=1, min=1, max=60),
    stop=stop_after_attempt(5),
    reraise=True,
)
def _execute(request: Any) -> dict[str, Any]:
    try:
        return request.execute()
    except HttpError as exc:
        if exc.resp.status == 401:
            raise ReauthenticationRequired("Gmail rejected the access token") from exc
        raise


class GmailClient(MailClient):
    """Summary: Gmail API client built on googleapiclient with retrying requests.

    Importance: Provides live access to a user's mailbox with an OAuth access token.
    Alternatives: Use IMAP with XOAUTH2.
    """

    def __init__(self, access_token: str) -> None:
        """Summary: Initialize with a short-lived OAuth access token.

        Importance: Refresh is owned by the credential provider, not this client.
        Alternatives: Pass full google-auth credentials with refresh support.
        """

        self._credentials = Credentials(token=access_token)
        self._local = threading.local()

    def _service(self) -> Any:
        # httplib2 transports are not thread-safe, so each worker thread gets its own.
        service = getattr(self._local, "service", None)
        if service is None:
            service = build("gmail", "v1", credentials=self._credentials, cache_discovery=False)
            self._local.service = service
        return service

    def list_messages(self, query: str, max_results: int) -> list[str]:
        ids: list[str] = []
        page_token: str | None = None
        while True:
            kwargs: dict[str, Any] = {
                "userId": "me",
                "q": query,
                "maxResults": min(PAGE_SIZE, max_results),
                "fields": "messages/id,nextPageToken",
            }
            if page_token:
                kwargs["pageToken"] = page_token
            response = _execute(self._service().users().messages().list(**kwargs))
            for item in response.get("messages", []):
                ids.append(item["id"])
                if len(ids) >= max_results:
                    return ids
            page_token = response.get("nextPageToken")
            if not page_token:
                return ids

    def get_message(self, message_id: str) -> Message:
        response = _execute(
            self._service()
            .users()
            .messages()
            .get(userId="me", id=message_id, format="metadata", metadataHeaders=METADATA_HEADERS)
        )
        return parse_gmail_message(response)

    def list_labels(self) -> list[dict[str, str]]:
        response = _execute(self._service().users().labels().list(userId="me"))
        return [
            {"id": label["id"], "name": label.get("name", "")}
            for label in response.get("labels", [])
        ]

    def create_label(self, name: str, color: dict[str, str]) -> str:
        body = {
            "name": name,
            "labelListVisibility": "labelShow",
            "messageListVisibility": "show",
            "color": color,
        }
        response = _execute(self._service().users().labels().create(userId="me", body=body))
        return response["id"]

    def apply_label(self, message_id: str, label_id: str) -> None:
        _execute(
            self._service()
            .users()
            .messages()
            .modify(userId="me", id=message_id, body={"addLabelIds": [label_id]})
        )


def parse_gmail_message(payload: dict[str, Any]) -> Message:
    """Summary: Parse a Gmail metadata payload into a Message.

    Importance: Normalizes Gmail payloads into the core message model.
    Alternatives: Store raw Gmail payloads and parse later.
    """

    headers = _parse_gmail_headers((payload.get("payload") or {}).get("headers", []))
    label_ids = tuple(payload.get("labelIds") or ())
    return Message(
        remote_message_id=payload.get("id", ""),
        thread_id=payload.get("threadId", ""),
        sender=headers.get("from", ""),
        recipients=_addresses(headers.get("to", "")),
        cc=_addresses(headers.get("cc", "")),
        subject=headers.get("subject", ""),
        snippet=payload.get("snippet", ""),
        received_at=_received_at(payload.get("internalDate"), headers.get("date", "")),
        is_read="UNREAD" not in label_ids,
        labels=label_ids,
    )


def _parse_gmail_headers(headers: list[dict[str, Any]]) -> dict[str, str]:
    """Summary: Normalize Gmail header list into a lower-cased dictionary.

    Importance: Header names arrive in inconsistent case across senders.
    Alternatives: Scan header lists inline for each field.
    """

    normalized: dict[str, str] = {}
    for header in headers:
        name = header.get("name")
        value = header.get("value")
        if name and value:
            normalized[name.lower()] = value
    return normalized


def _addresses(value: str) -> tuple[str, ...]:
    return tuple(address for _, address in getaddresses([value]) if address)


def _received_at(internal_date: str | None, date_header: str) -> datetime:
    if internal_date:
        try:
            return datetime.fromtimestamp(int(internal_date) / 1000, tz=timezone.utc)
        except ValueError:
            pass
    if date_header:
        try:
            parsed = parsedate_to_datetime(date_header)
        except (TypeError, ValueError):
            parsed = None
        if parsed is not None:
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return datetime.now(timezone.utc)


class MockMailClient(MailClient):
    """Summary: In-memory mailbox used by tests, demos, and fixture runs.

    Importance: Enables offline runs of the full pipeline with failure injection.
    Alternatives: Record and replay real Gmail HTTP traffic.
    """

    def __init__(
        self,
        messages: list[Message] | None = None,
        labels: list[dict[str, str]] | None = None,
    ) -> None:
        self._messages = {message.remote_message_id: message for message in messages or []}
        self._labels = list(labels or [])
        self._lock = threading.Lock()
        self.applied: dict[str, list[str]] = {}
        self.created_labels: list[str] = []
        self.list_label_calls = 0
        self.fail_list: Exception | None = None
        self.fail_get: set[str] = set()
        self.fail_apply: set[str] = set()
        self.fail_labels: Exception | None = None
        self.revoked = False

    @staticmethod
    def from_fixture(path: Path) -> "MockMailClient":
        """Summary: Load a mailbox from a JSON fixture file.

        Importance: Supports the CLI fixture run without Gmail credentials.
        Alternatives: Generate synthetic messages at runtime.
        """

        data = json.loads(path.read_text(encoding="utf-8"))
        messages = [
            Message(
                remote_message_id=item["id"],
                thread_id=item.get("thread_id", item["id"]),
                sender=item["sender"],
                recipients=tuple(item.get("recipients", [])),
                cc=tuple(item.get("cc", [])),
                subject=item.get("subject", ""),
                snippet=item.get("snippet", ""),
                received_at=datetime.fromisoformat(item["received_at"]),
                is_read=bool(item.get("is_read", False)),
            )
            for item in data
        ]
        return MockMailClient(messages)

    def add_message(self, message: Message) -> None:
        with self._lock:
            self._messages[message.remote_message_id] = message

    def list_messages(self, query: str, max_results: int) -> list[str]:
        if self.fail_list is not None:
            raise self.fail_list
        match = _AFTER_RE.search(query or "")
        after = int(match.group(1)) if match else None
        with self._lock:
            candidates = sorted(self._messages.values(), key=lambda item: item.received_at, reverse=True)
        ids = [
            message.remote_message_id
            for message in candidates
            if after is None or message.received_at.timestamp() > after
        ]
        return ids[:max_results]

    def get_message(self, message_id: str) -> Message:
        self._check_access()
        if message_id in self.fail_get:
            raise RuntimeError(f"Failed to fetch message {message_id}")
        with self._lock:
            return self._messages[message_id]

    def list_labels(self) -> list[dict[str, str]]:
        with self._lock:
            self.list_label_calls += 1
            if self.fail_labels is not None:
                raise self.fail_labels
            return list(self._labels)

    def create_label(self, name: str, color: dict[str, str]) -> str:
        with self._lock:
            if self.fail_labels is not None:
                raise self.fail_labels
            label_id = f"Label_{len(self._labels) + 1}"
            self._labels.append({"id": label_id, "name": name})
            self.created_labels.append(name)
            return label_id

    def apply_label(self, message_id: str, label_id: str) -> None:
        self._check_access()
        if message_id in self.fail_apply:
            raise RuntimeError(f"Failed to label message {message_id}")
        with self._lock:
            self.applied.setdefault(message_id, []).append(label_id)

    def _check_access(self) -> None:
        if self.revoked:
            raise ReauthenticationRequired("Access token expired")
