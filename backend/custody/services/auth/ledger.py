"""Refresh rotation ledger: rotate-on-use with reuse detection.

Every method runs against a caller-owned read-write unit of work; the ledger
never commits. Outcomes are returned as :class:`RotationResult` values so that
the caller can commit revocations *before* raising the matching error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from custody.models.refresh_token import RefreshToken
from custody.services._shared.hashing import sha256_hex
from custody.services._shared.ports.token_provider import (
    IssuedTokens,
    SessionTokenClaims,
    TokenProvider,
)
from custody.uow.sqlalchemy_uow import SQLAlchemyUnitOfWork

log = logging.getLogger(__name__)


class RotationResult(Enum):
    """Outcome of presenting a refresh token to the ledger."""

    OK = "ok"
    INVALID = "invalid"
    REUSED = "reused"
    EXPIRED = "expired"


@dataclass(frozen=True, slots=True)
class RotationOutcome:
    """
    Result of :meth:`RefreshRotationLedger.rotate`.

    :param result: Ledger decision.
    :param user_id: Owner of the presented record, when one was found.
    :param tokens: New pair; only set when ``result`` is ``OK``.
    """

    result: RotationResult
    user_id: int | None = None
    tokens: IssuedTokens | None = None


class RefreshRotationLedger:
    """
    Persistent state machine over ``refresh_tokens``.

    ``active`` (no ``rotated_at``) → ``rotated`` → ``reused``. A record leaves
    ``active`` only through a conditional update, so concurrent presentations
    of one token have exactly one winner.
    """

    def __init__(self, *, token_provider: TokenProvider) -> None:
        self.tokens = token_provider

    # ------------------------------------------------------------------ #
    # Issuance
    # ------------------------------------------------------------------ #

    def start(self, uow: SQLAlchemyUnitOfWork, user_id: int, *, now: datetime) -> IssuedTokens:
        """Revoke the user's active records, then issue and record a new pair."""
        revoked = uow.refresh_tokens.rotate_active_for_user(user_id, now=now)
        if revoked:
            log.info("refresh.session_replaced user_id=%s revoked=%s", user_id, revoked)
        return self._issue(uow, user_id)

    def revoke_all(self, uow: SQLAlchemyUnitOfWork, user_id: int, *, now: datetime) -> int:
        """Rotate every active record of ``user_id`` (logout everywhere)."""
        return uow.refresh_tokens.rotate_active_for_user(user_id, now=now)

    # ------------------------------------------------------------------ #
    # Rotation
    # ------------------------------------------------------------------ #

    def rotate(
        self,
        uow: SQLAlchemyUnitOfWork,
        raw_token: str,
        claims: SessionTokenClaims,
        *,
        now: datetime,
    ) -> RotationOutcome:
        """
        Consume ``raw_token`` and, when healthy, issue its successor.

        ``claims`` must come from a verified refresh token (expiry may be
        relaxed so that expired tokens reach the expiry branch).

        :param uow: Read-write unit of work owned by the caller.
        :param raw_token: Presented refresh token.
        :param claims: Verified claims of ``raw_token``.
        :param now: Evaluation instant (UTC).
        :returns: Decision plus the new pair on success.
        """
        repo = uow.refresh_tokens
        record = repo.get_by_hash_for_update(sha256_hex(raw_token))
        if record is None:
            return RotationOutcome(RotationResult.INVALID)

        record_id, owner_id = record.id, record.user_id

        if record.jwt_id != claims.jwt_id or str(owner_id) != claims.subject:
            revoked = repo.rotate_active_for_user(owner_id, now=now)
            log.warning(
                "refresh.tamper_detected user_id=%s record_id=%s revoked=%s",
                owner_id,
                record_id,
                revoked,
            )
            return RotationOutcome(RotationResult.INVALID, user_id=owner_id)

        if record.reused_at is not None:
            return RotationOutcome(RotationResult.REUSED, user_id=owner_id)

        if record.rotated_at is not None:
            return self._poison(uow, record, now=now)

        if record.is_expired(now) or claims.expires_at <= now:
            repo.rotate_if_active(record_id, now=now)
            return RotationOutcome(RotationResult.EXPIRED, user_id=owner_id)

        if not repo.rotate_if_active(record_id, now=now):
            # A concurrent refresh consumed this token first.
            return self._poison(uow, record, now=now)
        repo.rotate_active_for_user(owner_id, now=now)

        if uow.users.get(owner_id) is None:
            return RotationOutcome(RotationResult.INVALID, user_id=owner_id)

        return RotationOutcome(
            RotationResult.OK, user_id=owner_id, tokens=self._issue(uow, owner_id)
        )

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _issue(self, uow: SQLAlchemyUnitOfWork, user_id: int) -> IssuedTokens:
        issued = self.tokens.issue_tokens(user_id)
        claims = issued.refresh_claims
        uow.refresh_tokens.add(
            RefreshToken(
                user_id=user_id,
                token_hash=sha256_hex(issued.refresh_token),
                jwt_id=claims.jwt_id,
                expires_at=claims.expires_at,
            )
        )
        return issued

    def _poison(
        self, uow: SQLAlchemyUnitOfWork, record: RefreshToken, *, now: datetime
    ) -> RotationOutcome:
        record_id, owner_id = record.id, record.user_id
        uow.refresh_tokens.mark_reused(record_id, now=now)
        revoked = uow.refresh_tokens.rotate_active_for_user(owner_id, now=now)
        log.warning(
            "refresh.reuse_detected user_id=%s record_id=%s revoked=%s",
            owner_id,
            record_id,
            revoked,
        )
        return RotationOutcome(RotationResult.REUSED, user_id=owner_id)
