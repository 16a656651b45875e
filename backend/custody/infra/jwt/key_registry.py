"""Signing and verification key material for session tokens.

The registry is built once, when the application starts, and never mutated
afterwards. It holds exactly one *active* signing key plus any number of
trusted verification keys keyed by ``kid`` so that tokens signed by a
previous key keep verifying until they expire (zero-downtime rotation).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from types import MappingProxyType
from typing import Any

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.types import (
    PrivateKeyTypes,
    PublicKeyTypes,
)

log = logging.getLogger(__name__)


class InvalidKeyMaterialError(ValueError):
    """Raised at startup when configured PEM material cannot be loaded."""


class UntrustedKeyError(LookupError):
    """Raised when a token names no ``kid`` or a ``kid`` that is not trusted."""


@dataclass(frozen=True, slots=True)
class SigningKeyMaterial:
    """
    One asymmetric key pair identified by ``key_id``.

    :ivar key_id: Value stamped in the ``kid`` header of issued tokens.
    :ivar private_key: Private half; ``None`` for verification-only keys.
    :ivar public_key: Public half used to verify signatures.
    :ivar loaded_at: When the material was loaded (UTC).
    """

    key_id: str
    private_key: PrivateKeyTypes | None
    public_key: PublicKeyTypes
    loaded_at: datetime


def _read_pem(raw: str) -> bytes:
    """Return PEM bytes from inline text or an ``@/path/to/file.pem`` reference."""
    text = raw.strip()
    if text.startswith("@"):
        return Path(text[1:]).read_bytes()
    # Allow single-line env values with escaped newlines.
    return text.replace("\\n", "\n").encode()


def load_private_key(raw: str) -> PrivateKeyTypes:
    """Parse an unencrypted PEM private key.

    :raises InvalidKeyMaterialError: If the PEM is missing or malformed.
    """
    if not raw or not raw.strip():
        raise InvalidKeyMaterialError("A signing private key is required.")
    try:
        return serialization.load_pem_private_key(_read_pem(raw), password=None)
    except (ValueError, TypeError, OSError) as exc:
        raise InvalidKeyMaterialError("Signing private key could not be loaded.") from exc


def load_public_key(raw: str) -> PublicKeyTypes:
    """Parse a PEM public key.

    :raises InvalidKeyMaterialError: If the PEM is malformed.
    """
    try:
        return serialization.load_pem_public_key(_read_pem(raw))
    except (ValueError, TypeError, OSError) as exc:
        raise InvalidKeyMaterialError("Verification public key could not be loaded.") from exc


@dataclass(frozen=True, slots=True)
class KeyRegistry:
    """
    Immutable holder of the active signing key and the trusted verification keys.

    :ivar signing_key: The single key used for every new token.
    :ivar verification_keys: ``kid -> material`` for every trusted key,
        the active one included.
    """

    signing_key: SigningKeyMaterial
    verification_keys: Mapping[str, SigningKeyMaterial] = field(default_factory=dict)

    def __post_init__(self) -> None:
        keys = dict(self.verification_keys)
        keys.setdefault(self.signing_key.key_id, self.signing_key)
        if keys[self.signing_key.key_id].public_key is not self.signing_key.public_key:
            raise InvalidKeyMaterialError(
                f"kid {self.signing_key.key_id!r} is bound to two different keys."
            )
        object.__setattr__(self, "verification_keys", MappingProxyType(keys))

    @classmethod
    def from_keys(
        cls,
        *,
        key_id: str,
        private_key: PrivateKeyTypes,
        trusted: Mapping[str, PublicKeyTypes] | None = None,
    ) -> KeyRegistry:
        """Build a registry from already-parsed key objects."""
        now = datetime.now(UTC)
        active = SigningKeyMaterial(
            key_id=key_id,
            private_key=private_key,
            public_key=private_key.public_key(),
            loaded_at=now,
        )
        historical = {
            kid: SigningKeyMaterial(key_id=kid, private_key=None, public_key=pub, loaded_at=now)
            for kid, pub in (trusted or {}).items()
            if kid != key_id
        }
        return cls(signing_key=active, verification_keys=historical)

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> KeyRegistry:
        """
        Load key material from application config.

        Reads ``JWT_SIGNING_KEY_ID``, ``JWT_PRIVATE_KEY``, ``JWT_PUBLIC_KEY``
        and ``JWT_TRUSTED_PUBLIC_KEYS``.

        :raises InvalidKeyMaterialError: If any configured key is unusable or
            the configured public key does not match the private key.
        """
        key_id = str(config.get("JWT_SIGNING_KEY_ID") or "").strip()
        if not key_id:
            raise InvalidKeyMaterialError("JWT_SIGNING_KEY_ID must not be empty.")

        private_key = load_private_key(str(config.get("JWT_PRIVATE_KEY") or ""))
        public_pem = str(config.get("JWT_PUBLIC_KEY") or "")
        if public_pem.strip():
            configured = load_public_key(public_pem)
            if _public_der(configured) != _public_der(private_key.public_key()):
                raise InvalidKeyMaterialError("JWT_PUBLIC_KEY does not match JWT_PRIVATE_KEY.")

        trusted = {
            str(kid): load_public_key(pem)
            for kid, pem in dict(config.get("JWT_TRUSTED_PUBLIC_KEYS") or {}).items()
        }
        registry = cls.from_keys(key_id=key_id, private_key=private_key, trusted=trusted)
        log.info(
            "key_registry.loaded active_kid=%s trusted_kids=%s",
            key_id,
            ",".join(registry.trusted_key_ids),
        )
        return registry

    @property
    def trusted_key_ids(self) -> list[str]:
        """Sorted list of every ``kid`` accepted for verification."""
        return sorted(self.verification_keys)

    def verification_key(self, kid: str | None) -> PublicKeyTypes:
        """
        Return the public key trusted for ``kid``.

        :raises UntrustedKeyError: If ``kid`` is empty or unknown.
        """
        if not kid:
            raise UntrustedKeyError("Token header carries no key id.")
        material = self.verification_keys.get(kid)
        if material is None:
            raise UntrustedKeyError("Token key id is not trusted.")
        return material.public_key


def _public_der(key: PublicKeyTypes) -> bytes:
    return key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
