import pytest
from sqlalchemy import text
from sqlalchemy.orm import Session

from custody.models.user import User
from custody.uow import (
    SQLAlchemyReadOnlyUnitOfWork as ROuow,
)
from custody.uow import (
    SQLAlchemyUnitOfWork as RWuow,
)
from tests.factories.user import UserFactory


class TestSQLAlchemyReadOnlyUnitOfWork:
    def test_blocks_orm_flush_writes(self, app, session):
        """
        Ensure that attempting to flush ORM changes inside the RO UoW raises.
        """
        with ROuow() as uow, pytest.raises(RuntimeError, match="ORM flush blocked"):
            user = UserFactory.build()
            uow.session.add(user)
            uow.session.flush()

    def test_blocks_core_dml(self, app, session):
        """
        Ensure that raw SQL DML is blocked inside the RO UoW.
        """
        email = UserFactory.build().email
        with ROuow() as uow, pytest.raises(RuntimeError, match="SQL statement blocked"):
            uow.session.execute(
                text("INSERT INTO users (email, password_hash) VALUES (:email, 'x')"),
                {"email": email},
            )

    def test_allows_reads(self, app, session):
        """
        Read operations should work normally within RO UoW.
        """
        with RWuow() as uow:
            uow.users.add(UserFactory.build())

        with ROuow() as uow:
            count = uow.session.query(User).count()
            assert count >= 1

    def test_disallows_commit(self, app, session):
        """
        RO UoW must reject commit().
        """
        with ROuow() as uow, pytest.raises(RuntimeError, match="does not allow commit"):
            uow.commit()

    def test_attaches_to_open_transaction(self, app, session):
        """
        Inside an outer writer UoW the RO UoW reuses the transaction and sees
        its uncommitted rows.
        """
        with RWuow() as outer:
            user = outer.users.add(UserFactory.build(email="inner@example.com"))
            with ROuow() as uow:
                assert uow.users.get_by_email("inner@example.com").id == user.id

        assert session.query(User).filter_by(email="inner@example.com").count() == 1

    def test_always_rolls_back_changes(self, app, session):
        """
        Any attempted modifications must not persist after RO UoW exits.
        """
        with RWuow() as uow:
            user = UserFactory.build()
            uow.users.add(user)
            user_id = user.id

        with ROuow() as uow, pytest.raises(RuntimeError, match="ORM flush blocked"):
            u = uow.session.get(User, user_id)
            original_email = u.email
            u.email = "mutated-in-ro@example.com"
            uow.session.flush()

        with RWuow() as uow:
            persisted = uow.session.get(User, user_id)
            assert persisted.email == original_email

    def test_owns_and_ends_transaction_when_none_is_open(self, app, session):
        """
        Outside any transaction the RO UoW begins its own on the concrete
        session and rolls it back on exit.
        """
        assert not session().in_transaction()

        with ROuow() as uow:
            assert isinstance(uow.session, Session)
            assert uow.session.in_transaction()
            assert uow.users.get_by_email("nobody@example.com") is None

        assert not session().in_transaction()
