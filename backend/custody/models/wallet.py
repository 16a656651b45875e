"""Custodial wallet: an EVM address plus its encrypted private key."""

from __future__ import annotations

from sqlalchemy import ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, validates

from custody.core.extensions import db

from .base import CreatedAtMixin, PKMixin, ReprMixin


class Wallet(PKMixin, ReprMixin, CreatedAtMixin, db.Model):
    """
    Wallet owned by a user.

    ``encrypted_private_key`` is never decrypted outside the transfer path and
    never serialized.
    """

    __tablename__ = "wallets"

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    address: Mapped[str] = mapped_column(String(42), nullable=False)
    encrypted_private_key: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (UniqueConstraint("address", name="uq_wallets_address"),)

    @validates("address")
    def _validate_address(self, key: str, value: str) -> str:
        if not isinstance(value, str) or len(value) != 42 or not value.startswith("0x"):
            raise ValueError("Wallet address must be a 0x-prefixed 20-byte hex string.")
        return value
