"""Generic repository base for SQLAlchemy 2.x.

Repositories here are persistence-only:

- lookups by primary key or by simple equality, optionally row-locked;
- state transitions as conditional ``UPDATE`` statements whose affected row
  count tells the caller whether it won;
- no commit/rollback; services own transactions through a unit of work.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Generic, TypeVar, cast

from sqlalchemy import ColumnElement, Select, select, update
from sqlalchemy.orm import Session

from custody.core.extensions import db

E = TypeVar("E")  # SQLAlchemy mapped entity type


class BaseRepository(Generic[E]):
    """Generic, persistence-only repository for a single model.

    Subclasses MUST define ``model``, the SQLAlchemy mapped class. Every model
    in this project carries an integer ``id`` primary key (``PKMixin``).
    """

    #: SQLAlchemy mapped model (must be set by subclasses)
    model: type[E]

    def __init__(self, session: Session | None = None) -> None:
        """
        :param session: Session shared across the unit of work. Falls back to
            the Flask-scoped ``db.session`` when omitted.
        :type session: :class:`sqlalchemy.orm.Session` | None
        """
        self._session: Session | None = session

    @property
    def session(self) -> Session:
        """Return the injected session, or the Flask-scoped one."""
        if self._session is not None:
            return self._session
        return cast(Session, db.session)

    # ------------------------------ Reads ------------------------------------

    def get(self, entity_id: int) -> E | None:
        """Return the entity with primary key ``entity_id`` or ``None``."""
        stmt = select(self.model).where(self.model.id == entity_id)  # type: ignore[attr-defined]
        return cast(E | None, self.session.execute(stmt).scalars().first())

    def find_one(self, *, for_update: bool = False, **filters: Any) -> E | None:
        """Find a single entity by equality filters.

        :param for_update: Lock the matched row with ``SELECT ... FOR UPDATE``
            (ignored by backends without row locks, such as SQLite).
        :type for_update: bool
        :param filters: ``column=value`` pairs combined with ``AND``.
        :returns: Entity or ``None``.
        :rtype: E | None
        """
        stmt: Select[Any] = select(self.model).where(
            *(getattr(self.model, key) == value for key, value in filters.items())
        )
        if for_update:
            # populate_existing refreshes an identity-map copy with the locked row.
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return cast(E | None, self.session.execute(stmt).scalars().first())

    # ------------------------------ Writes -----------------------------------

    def add(self, instance: E) -> E:
        """Stage ``instance`` and flush so its primary key is available.

        :raises sqlalchemy.exc.IntegrityError: On a unique or FK violation.
        """
        self.session.add(instance)
        self.flush()
        return instance

    def flush(self) -> None:
        self.session.flush()

    def _conditional_update(
        self,
        *criteria: ColumnElement[bool],
        values: Mapping[str, Any],
    ) -> int:
        """Run ``UPDATE <model> SET values WHERE criteria`` and return the row count.

        Pending changes are flushed first. Loaded instances of the model are
        expired afterwards so the next attribute access reloads the state the
        database settled on.

        :param criteria: Expected current state (the "compare" half of a CAS).
        :param values: Columns to assign (the "swap" half).
        :returns: Number of rows changed; ``0`` means another writer won.
        :rtype: int
        """
        stmt = (
            update(self.model)
            .where(*criteria)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.flush()
        result = self.session.execute(stmt)
        for obj in list(self.session.identity_map.values()):
            if isinstance(obj, self.model):
                self.session.expire(obj)
        return int(getattr(result, "rowcount", 0) or 0)
