"""Summary: Domain exceptions raised across services and the pipeline.

Importance: Gives the API and CLI precise failure types to map onto responses.
Alternatives: Raise generic exceptions and match on messages.
"""

from __future__ import annotations


class ReauthenticationRequired(RuntimeError):
    """Stored mail credentials are unusable and the user must reconnect the account."""


class JobAlreadyRunning(RuntimeError):
    """A bulk sort run is already active for the account."""


class JobSuperseded(RuntimeError):
    """The run no longer owns the account's job record after a reset or takeover."""


class NotEntitled(PermissionError):
    """The account's plan does not include the requested operation."""


class DuplicateMessage(ValueError):
    """A message with the same remote id has already been recorded."""


class AccountNotFound(LookupError):
    """No account exists for the given identifier."""


class MessageNotFound(LookupError):
    """No recorded message matches the identifier for the account."""
