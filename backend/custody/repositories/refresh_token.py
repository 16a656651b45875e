"""Refresh-token ledger persistence.

All state changes are conditional updates on ``rotated_at IS NULL`` so that
two concurrent refreshes of the same token cannot both succeed.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select

from custody.models.refresh_token import RefreshToken
from custody.repositories.base import BaseRepository


class RefreshTokenRepository(BaseRepository[RefreshToken]):
    """Persistence-only repository for :class:`RefreshToken`."""

    model = RefreshToken

    def get_by_hash_for_update(self, token_hash: str) -> RefreshToken | None:
        """Return the record for ``token_hash`` locked with ``SELECT ... FOR UPDATE``."""
        return self.find_one(for_update=True, token_hash=token_hash)

    def rotate_if_active(self, record_id: int, *, now: datetime) -> bool:
        """Mark one record rotated; ``False`` when it was already rotated by someone else."""
        changed = self._conditional_update(
            RefreshToken.id == record_id,
            RefreshToken.rotated_at.is_(None),
            values={"rotated_at": now},
        )
        return changed == 1

    def rotate_active_for_user(self, user_id: int, *, now: datetime) -> int:
        """Rotate every active record of ``user_id``.

        :returns: Number of records that were active and are now rotated.
        :rtype: int
        """
        return self._conditional_update(
            RefreshToken.user_id == user_id,
            RefreshToken.rotated_at.is_(None),
            values={"rotated_at": now},
        )

    def mark_reused(self, record_id: int, *, now: datetime) -> bool:
        """Record a reuse observation; keeps an earlier ``rotated_at`` intact."""
        changed = self._conditional_update(
            RefreshToken.id == record_id,
            RefreshToken.reused_at.is_(None),
            values={
                "reused_at": now,
                "rotated_at": func.coalesce(RefreshToken.rotated_at, now),
            },
        )
        return changed == 1

    def count_active_for_user(self, user_id: int) -> int:
        stmt = select(func.count(RefreshToken.id)).where(
            RefreshToken.user_id == user_id, RefreshToken.rotated_at.is_(None)
        )
        return int(self.session.execute(stmt).scalar_one())
