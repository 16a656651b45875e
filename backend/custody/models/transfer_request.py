"""Idempotent transfer reservation."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from custody.core.extensions import db

from .base import PKMixin, ReprMixin, TimestampMixin, UTCDateTime


class TransferStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"


class TransferRequest(PKMixin, ReprMixin, TimestampMixin, db.Model):
    """
    Reservation of one idempotency key for one user.

    Created ``pending`` together with a lease held by the creating request.
    Moves to ``completed`` with a ``transaction_hash`` exactly once, by the
    lease holder, and never goes back.

    Fields
    ------
    idempotency_key_hash : str
        SHA-256 hex of the client key; raw keys are never stored.
    amount : str
        Decimal amount as submitted (human units).
    destination_address : str
        Recipient as submitted; compared case-insensitively.
    lease_token / lease_expires_at :
        Current execution lease. ``NULL`` token means released.
    """

    __tablename__ = "transfer_requests"

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    idempotency_key_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[str] = mapped_column(String(80), nullable=False)
    destination_address: Mapped[str] = mapped_column(String(42), nullable=False)
    transaction_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=TransferStatus.PENDING.value
    )
    lease_token: Mapped[str | None] = mapped_column(String(64), nullable=True)
    lease_expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "idempotency_key_hash",
            name="uq_transfer_requests_user_idempotency",
        ),
    )

    @property
    def is_completed(self) -> bool:
        return self.status == TransferStatus.COMPLETED.value

    def lease_is_live(self, now: datetime) -> bool:
        return (
            self.lease_token is not None
            and self.lease_expires_at is not None
            and self.lease_expires_at > now
        )

    def matches(self, *, amount: str, destination_address: str) -> bool:
        """Return ``True`` when a retried payload is the one originally reserved."""
        return (
            self.amount == amount
            and self.destination_address.lower() == destination_address.lower()
        )
