"""
Unit tests for SQLAlchemyUnitOfWork (writer), using factories.
"""

from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError

from custody.models import User
from custody.uow import SQLAlchemyUnitOfWork
from tests.factories.user import UserFactory


class TestSQLAlchemyUnitOfWorkWriter:
    def test_writer_uow_commits_on_success(self, app, db, session):
        """
        GIVEN a writer UoW
        WHEN we create a user via repo inside the context and leave without exception
        THEN the transaction is committed and the row is visible afterwards.
        """
        initial = db.session.query(User).count()

        with SQLAlchemyUnitOfWork() as uow:
            u = UserFactory.build()
            uow.users.add(u)

        after = db.session.query(User).count()
        assert after == initial + 1

    def test_writer_uow_rolls_back_on_exception(self, app, db, session):
        """
        GIVEN a writer UoW
        WHEN an exception is raised inside the context
        THEN the transaction is rolled back and no rows are persisted.
        """
        initial = db.session.query(User).count()

        with pytest.raises(RuntimeError), SQLAlchemyUnitOfWork() as uow:
            u = UserFactory.build()
            uow.users.add(u)
            raise RuntimeError("boom")

        after = db.session.query(User).count()
        assert after == initial

    def test_savepoint_contains_unique_violation(self, app, db, session):
        """
        GIVEN a writer UoW with a committed user
        WHEN a duplicate insert fails inside ``savepoint()``
        THEN only the savepoint is undone and the outer work still commits.
        """
        existing = UserFactory(email="dup@example.com")
        session.commit()

        with SQLAlchemyUnitOfWork() as uow:
            kept = UserFactory.build(email="kept@example.com")
            uow.users.add(kept)
            with pytest.raises(IntegrityError), uow.savepoint():
                uow.users.add(UserFactory.build(email="dup@example.com"))
            assert uow.users.get_by_email("dup@example.com").id == existing.id

        assert db.session.query(User).filter_by(email="kept@example.com").count() == 1
        assert db.session.query(User).filter_by(email="dup@example.com").count() == 1
