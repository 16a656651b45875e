# custody/services/_shared/base.py
from __future__ import annotations

from datetime import UTC, datetime

from custody.uow.sqlalchemy_uow import (
    SQLAlchemyReadOnlyUnitOfWork,
    SQLAlchemyUnitOfWork,
)


class BaseService:
    """
    Common plumbing for application services.

    Services open units of work through :meth:`rw_uow` / :meth:`ro_uow` and
    read time through :meth:`now_utc`; they never touch ``db.session`` or
    Flask request state directly.
    """

    DEFAULT_READ_ISOLATION = "READ COMMITTED"

    def rw_uow(self) -> SQLAlchemyUnitOfWork:
        """Return a read-write unit of work (commits on clean exit)."""
        return SQLAlchemyUnitOfWork()

    def ro_uow(self, *, isolation: str | None = None) -> SQLAlchemyReadOnlyUnitOfWork:
        """
        Return a read-only unit of work.

        :param isolation: Isolation level applied when the UoW owns the
            transaction; defaults to :attr:`DEFAULT_READ_ISOLATION`.
        :type isolation: str | None
        :rtype: SQLAlchemyReadOnlyUnitOfWork
        """
        return SQLAlchemyReadOnlyUnitOfWork(isolation_level=isolation or self.DEFAULT_READ_ISOLATION)

    def now_utc(self) -> datetime:
        """Current instant; tests pin it by patching this method."""
        return datetime.now(UTC)
