from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


@dataclass(frozen=True, slots=True)
class SessionTokenClaims:
    """
    Verified claims of a session token.

    :param subject: ``sub`` claim (stringified user id).
    :param token_type: ``"access"`` or ``"refresh"``.
    :param issuer: ``iss`` claim.
    :param audience: ``aud`` claim.
    :param issued_at: ``iat`` as an aware UTC datetime.
    :param expires_at: ``exp`` as an aware UTC datetime.
    :param key_id: ``kid`` header of the key that signed the token.
    :param jwt_id: ``jti`` claim; only set for refresh tokens.
    """

    subject: str
    token_type: str
    issuer: str
    audience: str
    issued_at: datetime
    expires_at: datetime
    key_id: str
    jwt_id: str | None = None


@dataclass(frozen=True, slots=True)
class IssuedTokens:
    """
    A freshly minted access/refresh pair.

    :param access_token: Encoded access JWT.
    :param refresh_token: Encoded refresh JWT.
    :param refresh_claims: Claims of ``refresh_token`` (used to persist the ledger record).
    """

    access_token: str
    refresh_token: str
    refresh_claims: SessionTokenClaims


class TokenProvider(Protocol):
    """Port for issuing and verifying session tokens."""

    def issue_tokens(self, user_id: int) -> IssuedTokens: ...

    def verify_access_token(self, token: str) -> SessionTokenClaims | None: ...

    def verify_refresh_token(
        self, token: str, *, allow_expired: bool = False
    ) -> SessionTokenClaims | None: ...
