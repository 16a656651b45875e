"""Factory Boy base wired to the transactional test session."""

from __future__ import annotations

import factory


class SQLAlchemySession:
    """Holder for the session installed by the ``_factories_session`` fixture."""

    _session = None

    @classmethod
    def set(cls, session):
        cls._session = session

    @classmethod
    def get(cls):
        """Return the registered session.

        Raises
        ------
        RuntimeError
            If a factory runs in a test that does not use the ``session`` fixture.
        """
        if cls._session is None:
            raise RuntimeError("No factory session; request the 'session' fixture.")
        return cls._session


class BaseFactory(factory.alchemy.SQLAlchemyModelFactory):
    """Persist with ``flush`` so ids exist while the test transaction stays open."""

    class Meta:
        abstract = True
        sqlalchemy_session_factory = SQLAlchemySession.get
        sqlalchemy_session_persistence = "flush"
