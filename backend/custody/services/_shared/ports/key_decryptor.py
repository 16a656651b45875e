from __future__ import annotations

from typing import Protocol


class DecryptionError(Exception):
    """Raised when a stored private key cannot be decrypted."""


class KeyDecryptor(Protocol):
    """Port for at-rest decryption of custodial private keys."""

    def decrypt(self, blob: str) -> str:
        """Return the hex private key held in ``blob``.

        :raises DecryptionError: On malformed input or authentication failure.
        """
        ...
