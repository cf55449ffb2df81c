"""Summary: Token encryption utilities for OAuth credentials.

Importance: Keeps mail-account tokens encrypted at rest in SQLite.
Alternatives: Use a dedicated secrets manager or cloud KMS.
"""

from __future__ import annotations

import base64
import hashlib

from cryptography.fernet import Fernet, InvalidToken


class TokenDecodeError(ValueError):
    """Raised when a stored token cannot be decrypted with the configured secret."""


class TokenCodec:
    """Summary: Symmetric token encoder/decoder backed by Fernet.

    Importance: Provides authenticated encryption for stored access and refresh tokens.
    Alternatives: Store tokens in a vault and keep only references locally.
    """

    def __init__(self, secret: str) -> None:
        """Summary: Initialize with a secret used to derive the Fernet key.

        Importance: Keeps token encryption consistent per deployment.
        Alternatives: Require a pre-generated Fernet key in configuration.
        """

        self._fernet = Fernet(_derive_key(secret))

    def encode(self, plaintext: str) -> str:
        """Summary: Encrypt plaintext into a URL-safe token string.

        Importance: Avoids storing raw tokens in SQLite.
        Alternatives: Store tokens in a vault.
        """

        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("utf-8")

    def decode(self, payload: str) -> str:
        """Summary: Decrypt a stored token back to plaintext.

        Importance: Allows using stored tokens for provider calls.
        Alternatives: Skip decoding and require re-authentication.
        """

        try:
            return self._fernet.decrypt(payload.encode("utf-8")).decode("utf-8")
        except InvalidToken as exc:
            raise TokenDecodeError("Stored token could not be decrypted") from exc


def _derive_key(secret: str) -> bytes:
    """Summary: Derive a 32-byte Fernet key from an arbitrary secret string.

    Importance: Lets operators configure any passphrase instead of a raw key.
    Alternatives: Use a password KDF such as scrypt with a stored salt.
    """

    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest)
