"""Wallet repository."""

from __future__ import annotations

from typing import cast

from sqlalchemy import select

from custody.models.wallet import Wallet
from custody.repositories.base import BaseRepository


class WalletRepository(BaseRepository[Wallet]):
    """Persistence-only repository for :class:`Wallet`."""

    model = Wallet

    def get_by_user(self, user_id: int) -> Wallet | None:
        """Return the wallet owned by ``user_id`` (oldest first when several exist)."""
        stmt = select(Wallet).where(Wallet.user_id == user_id).order_by(Wallet.id.asc())
        return cast(Wallet | None, self.session.execute(stmt).scalars().first())
