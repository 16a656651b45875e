"""Transfer reservation persistence.

Lease ownership moves only through compare-and-swap updates; the holder of
``lease_token`` is the single request allowed to broadcast and complete.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import or_

from custody.models.transfer_request import TransferRequest, TransferStatus
from custody.repositories.base import BaseRepository

UNIQUE_KEY_CONSTRAINT = "uq_transfer_requests_user_idempotency"
# SQLite names the columns rather than the constraint.
UNIQUE_KEY_COLUMNS = "transfer_requests.idempotency_key_hash"


class TransferRequestRepository(BaseRepository[TransferRequest]):
    """Persistence-only repository for :class:`TransferRequest`."""

    model = TransferRequest

    def get_for_key(
        self, user_id: int, key_hash: str, *, for_update: bool = True
    ) -> TransferRequest | None:
        """Return the reservation for ``(user_id, key_hash)``, locked by default."""
        return self.find_one(
            for_update=for_update, user_id=user_id, idempotency_key_hash=key_hash
        )

    def take_over_lease(
        self,
        request_id: int,
        *,
        lease_token: str,
        expires_at: datetime,
        now: datetime,
    ) -> bool:
        """Acquire the lease of a pending reservation whose lease is released or expired."""
        changed = self._conditional_update(
            TransferRequest.id == request_id,
            TransferRequest.status == TransferStatus.PENDING.value,
            or_(
                TransferRequest.lease_token.is_(None),
                TransferRequest.lease_expires_at <= now,
            ),
            values={"lease_token": lease_token, "lease_expires_at": expires_at},
        )
        return changed == 1

    def complete(self, request_id: int, *, lease_token: str, transaction_hash: str) -> bool:
        """Record the broadcast hash; only the current lease holder succeeds."""
        changed = self._conditional_update(
            TransferRequest.id == request_id,
            TransferRequest.status == TransferStatus.PENDING.value,
            TransferRequest.lease_token == lease_token,
            values={
                "status": TransferStatus.COMPLETED.value,
                "transaction_hash": transaction_hash,
                "lease_token": None,
                "lease_expires_at": None,
            },
        )
        return changed == 1

    def release_lease(self, request_id: int, *, lease_token: str) -> bool:
        """Give the lease back so a later retry can resume immediately."""
        changed = self._conditional_update(
            TransferRequest.id == request_id,
            TransferRequest.status == TransferStatus.PENDING.value,
            TransferRequest.lease_token == lease_token,
            values={"lease_token": None, "lease_expires_at": None},
        )
        return changed == 1

    def renew_lease(self, request_id: int, *, lease_token: str, expires_at: datetime) -> bool:
        """Extend the lease of its current holder; ``False`` once it was lost."""
        changed = self._conditional_update(
            TransferRequest.id == request_id,
            TransferRequest.status == TransferStatus.PENDING.value,
            TransferRequest.lease_token == lease_token,
            values={"lease_expires_at": expires_at},
        )
        return changed == 1
