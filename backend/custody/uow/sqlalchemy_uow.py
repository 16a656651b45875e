"""
SQLAlchemy units of work over the Flask-scoped session.
"""

from __future__ import annotations

import logging
from contextlib import suppress

from sqlalchemy import event, text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import InvalidRequestError, SQLAlchemyError
from sqlalchemy.orm import Session, SessionTransaction

from custody.core.extensions import db
from custody.repositories import (
    RefreshTokenRepository,
    TransferRequestRepository,
    UserRepository,
    WalletRepository,
)
from custody.uow.base import UnitOfWork

log = logging.getLogger(__name__)

# Dialects that understand SET TRANSACTION directives.
_SET_TRANSACTION_DIALECTS = ("postgresql", "mysql", "mariadb")

# First SQL keyword of statements a read-only unit of work refuses.
_WRITE_KEYWORDS = frozenset(
    {"insert", "update", "delete", "merge", "replace", "upsert", "alter", "drop", "truncate", "create"}
)


class SQLAlchemyRepositoryContainer:
    """Repositories bound to one session."""

    def __init__(self, *, session: Session) -> None:
        self.session = session
        self.users = UserRepository(session=session)
        self.wallets = WalletRepository(session=session)
        self.refresh_tokens = RefreshTokenRepository(session=session)
        self.transfer_requests = TransferRequestRepository(session=session)


class SQLAlchemyUnitOfWork(SQLAlchemyRepositoryContainer, UnitOfWork):
    """
    Read-write unit of work.

    Leaving the block normally commits; an exception (or a failed commit)
    rolls back and propagates.
    """

    def __init__(self) -> None:
        super().__init__(session=db.session)

    def __enter__(self) -> SQLAlchemyUnitOfWork:
        # The session begins lazily on the first statement.
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self.rollback()
            return
        try:
            self.commit()
        except Exception:
            self.rollback()
            raise

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()

    def savepoint(self) -> SessionTransaction:
        """Open a SAVEPOINT; use as a context manager around a racy insert.

        A unique violation inside the block rolls back to the savepoint only,
        leaving the outer transaction usable for the follow-up read.
        """
        return self.session.begin_nested()


class SQLAlchemyReadOnlyUnitOfWork(SQLAlchemyRepositoryContainer, UnitOfWork):
    """
    Read-only unit of work.

    Parameters
    ----------
    isolation_level:
        Isolation applied with ``SET TRANSACTION`` on dialects that support
        it, when this UoW owns the transaction.
    enforce_db_readonly:
        Also issue ``SET TRANSACTION READ ONLY`` on those dialects.

    Notes
    -----
    Writes are refused on every backend by two guards: a ``before_flush``
    hook on the session and a ``before_cursor_execute`` hook on the
    connection. Both raise :class:`RuntimeError`.

    When the session is already inside a transaction (an outer writer UoW,
    or the SAVEPOINT-wrapped test session) the UoW joins it: guards are still
    installed, but no directives are issued and nothing is rolled back.
    """

    def __init__(
        self,
        *,
        isolation_level: str | None = "READ COMMITTED",
        enforce_db_readonly: bool = True,
    ) -> None:
        # The scoped registry does not proxy in_transaction(); bind the
        # current thread's Session itself.
        super().__init__(session=db.session())
        self.isolation_level = isolation_level
        self.enforce_db_readonly = enforce_db_readonly
        self._owned: SessionTransaction | None = None
        self._conn: Connection | None = None
        self._listeners: list[tuple[object, str, object]] = []

    def __enter__(self) -> SQLAlchemyReadOnlyUnitOfWork:
        if not self.session.in_transaction():
            self._owned = self.session.begin()
        self._conn = self.session.connection()
        self._install_guards(self._conn)
        if self._owned is not None:
            self._apply_directives(self._conn.dialect.name)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if self._owned is not None:
                with suppress(SQLAlchemyError):
                    self.session.rollback()
        finally:
            self._owned = None
            self._remove_guards()
            self._conn = None

    def commit(self) -> None:
        """
        :raises RuntimeError: always; read-only work never commits.
        """
        raise RuntimeError("Read-only UnitOfWork does not allow commit().")

    def rollback(self) -> None:
        self.session.rollback()

    # ----------------------------- Guards -------------------------------------

    def _apply_directives(self, dialect: str) -> None:
        if dialect not in _SET_TRANSACTION_DIALECTS:
            return
        try:
            if self.isolation_level:
                level = self.isolation_level.upper().strip()
                self.session.execute(text(f"SET TRANSACTION ISOLATION LEVEL {level}"))
            if self.enforce_db_readonly:
                self.session.execute(text("SET TRANSACTION READ ONLY"))
        except SQLAlchemyError as exc:
            log.warning("uow.readonly.directives_failed error=%s; guards only", exc)

    def _install_guards(self, conn: Connection) -> None:
        def block_flush(session, flush_context, instances):
            if session.new or session.dirty or session.deleted:
                raise RuntimeError("Read-only UnitOfWork: ORM flush blocked.")

        def block_writes(conn, cursor, statement, parameters, context, executemany):
            keyword = statement.lstrip().split(None, 1)[0].lower() if statement else ""
            if keyword in _WRITE_KEYWORDS:
                raise RuntimeError(f"Read-only UnitOfWork: SQL statement blocked: {keyword.upper()}")

        for target, name, fn in (
            (self.session, "before_flush", block_flush),
            (conn, "before_cursor_execute", block_writes),
        ):
            event.listen(target, name, fn)
            self._listeners.append((target, name, fn))

    def _remove_guards(self) -> None:
        while self._listeners:
            target, name, fn = self._listeners.pop()
            with suppress(InvalidRequestError):
                event.remove(target, name, fn)
