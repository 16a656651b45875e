"""Refresh-token ledger record."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from custody.core.extensions import db

from .base import CreatedAtMixin, PKMixin, ReprMixin, UTCDateTime


class RefreshToken(PKMixin, ReprMixin, CreatedAtMixin, db.Model):
    """
    One issued refresh token, identified by the SHA-256 of its raw value.

    States
    ------
    active
        ``rotated_at`` is ``NULL``.
    rotated
        ``rotated_at`` is set; any later presentation is a reuse event.
    reused
        ``reused_at`` is set; the user's whole family has been revoked.

    Rows are only ever mutated to set ``rotated_at`` / ``reused_at``.
    """

    __tablename__ = "refresh_tokens"

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    token_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    jwt_id: Mapped[str] = mapped_column(String(64), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    rotated_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    reused_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    __table_args__ = (UniqueConstraint("token_hash", name="uq_refresh_tokens_token_hash"),)

    @property
    def is_active(self) -> bool:
        return self.rotated_at is None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now
