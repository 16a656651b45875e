# custody/infra/jwt/flask_jwt_token_provider.py
from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Any, cast

import jwt as pyjwt
from flask_jwt_extended.exceptions import JWTExtendedException

from custody.infra.jwt.key_registry import UntrustedKeyError
from custody.services._shared.ports.token_provider import (
    ACCESS_TOKEN_TYPE,
    REFRESH_TOKEN_TYPE,
    IssuedTokens,
    SessionTokenClaims,
    TokenProvider,
)

log = logging.getLogger(__name__)

_VERIFY_ERRORS = (pyjwt.PyJWTError, JWTExtendedException, UntrustedKeyError)


def new_refresh_jti() -> str:
    """Return a fresh 128-bit random token id (hex)."""
    return secrets.token_hex(16)


@dataclass(slots=True)
class JWTTokenProvider(TokenProvider):
    """
    Adapter for Flask-JWT-Extended.

    Signing and key lookup are delegated to the ``encode_key_loader`` /
    ``decode_key_loader`` callbacks registered in :mod:`custody.core.extensions`,
    which read the application's :class:`~custody.infra.jwt.key_registry.KeyRegistry`.

    .. note::
       Requires an active Flask app context with proper JWT settings.
    """

    def issue_tokens(self, user_id: int) -> IssuedTokens:
        from flask_jwt_extended import create_access_token as _create_access
        from flask_jwt_extended import create_refresh_token as _create_refresh

        from custody.core.extensions import get_key_registry

        headers = {"kid": get_key_registry().signing_key.key_id}
        identity = str(user_id)

        access = cast(str, _create_access(identity=identity, additional_headers=headers))

        # The refresh jti binds the token to its ledger record.
        jti = new_refresh_jti()
        refresh = cast(
            str,
            _create_refresh(
                identity=identity,
                additional_claims={"jti": jti},
                additional_headers=headers,
            ),
        )

        claims = self.verify_refresh_token(refresh)
        if claims is None or claims.jwt_id != jti:
            raise RuntimeError("Refresh token jti mismatch after creation.")

        return IssuedTokens(access_token=access, refresh_token=refresh, refresh_claims=claims)

    def verify_access_token(self, token: str) -> SessionTokenClaims | None:
        claims = self._verify(token, expected_type=ACCESS_TOKEN_TYPE, allow_expired=False)
        if claims is None:
            return None
        # The library stamps its own jti on access tokens; it is not part of our contract.
        return replace(claims, jwt_id=None)

    def verify_refresh_token(
        self, token: str, *, allow_expired: bool = False
    ) -> SessionTokenClaims | None:
        claims = self._verify(token, expected_type=REFRESH_TOKEN_TYPE, allow_expired=allow_expired)
        if claims is None:
            return None
        if not claims.jwt_id:
            log.debug("token.rejected reason=missing_jti")
            return None
        return claims

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _verify(
        self, token: str, *, expected_type: str, allow_expired: bool
    ) -> SessionTokenClaims | None:
        """Decode and validate ``token``; every failure collapses to ``None``."""
        from flask_jwt_extended import decode_token as _decode

        if not token:
            return None
        try:
            payload = cast(dict[str, Any], _decode(token, allow_expired=allow_expired))
            header = pyjwt.get_unverified_header(token)
        except _VERIFY_ERRORS as exc:
            log.debug("token.rejected reason=%s", type(exc).__name__)
            return None

        if payload.get("type") != expected_type:
            log.debug("token.rejected reason=wrong_type")
            return None
        if "exp" not in payload or "iat" not in payload:
            log.debug("token.rejected reason=missing_timestamps")
            return None

        audience = payload.get("aud")
        if isinstance(audience, list):
            audience = audience[0] if audience else ""

        return SessionTokenClaims(
            subject=str(payload["sub"]),
            token_type=expected_type,
            issuer=str(payload.get("iss", "")),
            audience=str(audience or ""),
            issued_at=datetime.fromtimestamp(int(payload["iat"]), tz=UTC),
            expires_at=datetime.fromtimestamp(int(payload["exp"]), tz=UTC),
            key_id=str(header.get("kid", "")),
            jwt_id=payload.get("jti") or None,
        )
