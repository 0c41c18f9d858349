"""Fernet encryption for the free text users attach to a week.

Bad-week reasons and notes are the only user-authored content the store
keeps; they are encrypted before they reach SQLite. Numeric metrics and
classifications stay in the clear so history queries need no key.

Several comma-separated keys may be configured to rotate keys: the first
encrypts, all of them are tried when decrypting.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

logger = logging.getLogger(__name__)


class EncryptionError(Exception):
    """Raised when encryption/decryption fails."""


class FieldEncryptor:
    """Encrypts and decrypts JSON-serializable values.

    Usage::

        encryptor = FieldEncryptor(key="...")
        token = encryptor.encrypt(["travel", "sick"])
        encryptor.decrypt(token)  # ["travel", "sick"]
    """

    def __init__(self, key: str) -> None:
        """
        Args:
            key: A Fernet key, or several separated by commas (newest first).

        Raises:
            EncryptionError: If no key is given or any key is invalid.
        """
        keys = [k.strip() for k in (key or "").split(",") if k.strip()]
        if not keys:
            raise EncryptionError("Encryption key must not be empty")
        try:
            self._fernet = MultiFernet([Fernet(k.encode("utf-8")) for k in keys])
        except ValueError as exc:
            raise EncryptionError(f"Invalid encryption key: {exc}") from exc
        self._key_count = len(keys)

    @property
    def key_count(self) -> int:
        return self._key_count

    def encrypt(self, data: Any) -> str:
        """Encrypt a JSON-serializable value to a Fernet token.

        ``None`` encrypts to the empty string so absent context stays absent.
        """
        if data is None:
            return ""
        try:
            plaintext = json.dumps(data, separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise EncryptionError(f"Encryption failed: {exc}") from exc
        return self._fernet.encrypt(plaintext).decode("utf-8")

    def decrypt(self, token: str | None) -> Any:
        """Decrypt a token produced by :meth:`encrypt`.

        Raises:
            EncryptionError: If the token is malformed or no key matches.
        """
        if not token:
            return None
        try:
            plaintext = self._fernet.decrypt(token.encode("utf-8"))
        except InvalidToken as exc:
            raise EncryptionError("Decryption failed: invalid token or wrong key") from exc
        try:
            return json.loads(plaintext)
        except ValueError as exc:
            raise EncryptionError(f"Decryption failed: {exc}") from exc

    def rotate(self, token: str) -> str:
        """Re-encrypt ``token`` under the primary key."""
        if not token:
            return ""
        try:
            return self._fernet.rotate(token.encode("utf-8")).decode("utf-8")
        except InvalidToken as exc:
            raise EncryptionError("Rotation failed: invalid token or wrong key") from exc

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode("utf-8")
