"""At-rest encryption of custodial private keys (AES-256-GCM).

Current format (``v2``)::

    v2.<salt>.<iv>.<tag>.<ciphertext>

every segment base64; the AES key is derived per record with scrypt
(N=2**14, r=8, p=1, 32 bytes) from the configured secret and the record salt.

Legacy format (read only)::

    <iv>.<tag>.<ciphertext>

keyed by ``SHA-256(secret)``.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from base64 import b64decode, b64encode
from collections.abc import Mapping
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from custody.services._shared.ports.key_decryptor import DecryptionError, KeyDecryptor

logger = logging.getLogger(__name__)

CURRENT_VERSION = "v2"
IV_LENGTH = 12
SALT_LENGTH = 16
KEY_LENGTH = 32
TAG_LENGTH = 16

MALFORMED = "Encrypted key is malformed"
UNDECRYPTABLE = "Unable to decrypt private key"


class KeyCipher(KeyDecryptor):
    """Encrypt and decrypt private keys with a secret from configuration."""

    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("ENCRYPTION_KEY must be configured to handle private keys.")
        self._secret = secret.encode("utf-8")

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> KeyCipher:
        return cls(str(config.get("ENCRYPTION_KEY") or ""))

    def _derive_key(self, salt: bytes) -> bytes:
        return Scrypt(salt=salt, length=KEY_LENGTH, n=2**14, r=8, p=1).derive(self._secret)

    def _legacy_key(self) -> bytes:
        return hashlib.sha256(self._secret).digest()

    def encrypt(self, plain_key: str) -> str:
        """Encrypt ``plain_key`` in the current ``v2`` format."""
        if not plain_key:
            raise ValueError("Plain key must be provided for encryption")
        salt = secrets.token_bytes(SALT_LENGTH)
        iv = secrets.token_bytes(IV_LENGTH)
        sealed = AESGCM(self._derive_key(salt)).encrypt(iv, plain_key.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        segments = [CURRENT_VERSION, *(b64encode(p).decode() for p in (salt, iv, tag, ciphertext))]
        return ".".join(segments)

    def decrypt(self, blob: str) -> str:
        """Decrypt ``blob`` (current or legacy format).

        :raises DecryptionError: ``"Encrypted key is malformed"`` for a wrong
            segment layout, ``"Unable to decrypt private key"`` otherwise.
        """
        logger.debug("key_cipher.decrypt")
        parts = (blob or "").split(".")
        if parts[0] == CURRENT_VERSION:
            if len(parts) != 5 or not all(parts[1:]):
                raise DecryptionError(MALFORMED)
            salt, iv, tag, ciphertext = parts[1:]
            return self._open(lambda: self._derive_key(b64decode(salt)), iv, tag, ciphertext)

        if len(parts) != 3 or not all(parts):
            raise DecryptionError(MALFORMED)
        iv, tag, ciphertext = parts
        return self._open(self._legacy_key, iv, tag, ciphertext)

    def _open(self, key_factory, iv: str, tag: str, ciphertext: str) -> str:
        try:
            key = key_factory()
            sealed = b64decode(ciphertext) + b64decode(tag)
            plain = AESGCM(key).decrypt(b64decode(iv), sealed, None)
            return plain.decode("utf-8")
        except (InvalidTag, ValueError) as exc:
            logger.error("key_cipher.decrypt_failed error=%s", type(exc).__name__)
            raise DecryptionError(UNDECRYPTABLE) from exc
