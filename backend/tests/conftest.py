"""Shared fixtures: one app and schema per run, one SAVEPOINT per test.

RSA signing keys are generated once; rows written by a test are rolled back
when it ends.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from sqlalchemy import event
from sqlalchemy.orm import scoped_session, sessionmaker

from custody.core.config import TestingConfig
from custody.core.extensions import db as _db
from custody.factory import create_app
from custody.infra.crypto.key_cipher import KeyCipher
from custody.infra.jwt.flask_jwt_token_provider import JWTTokenProvider
from custody.infra.jwt.key_registry import KeyRegistry
from tests.helpers.constants import (
    ENCRYPTION_SECRET,
    HISTORICAL_KEY_ID,
    RPC_URL,
    SIGNING_KEY_ID,
    TOKEN_CONTRACT,
)
from tests.helpers.fakes import FakeTransferClient


class TestConfig(TestingConfig):
    """Settings for the app under test.

    Notes
    -----
    - In-memory SQLite.
    - Points the RPC transport at a host that only ``responses`` answers.
    - Sleeps between RPC retries are disabled.
    """

    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    JWT_ALGORITHM = "RS256"
    JWT_DECODE_ALGORITHMS = ["RS256"]
    JWT_SIGNING_KEY_ID = SIGNING_KEY_ID
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(minutes=15)
    JWT_REFRESH_TOKEN_EXPIRES = timedelta(days=7)
    JWT_ENCODE_ISSUER = JWT_DECODE_ISSUER = "custody-api"
    JWT_ENCODE_AUDIENCE = JWT_DECODE_AUDIENCE = "custody-clients"
    ENCRYPTION_KEY = ENCRYPTION_SECRET
    RPC_URL = RPC_URL
    TOKEN_CONTRACT_ADDRESS = TOKEN_CONTRACT
    RPC_SLOT_INTERVAL = 0.0
    TRANSFER_LEASE_SECONDS = 300
    RETRY_AFTER_SECONDS = 7
    LOG_LEVEL = "WARNING"


@pytest.fixture(scope="session")
def signing_keys():
    """Return ``{kid: private_key}`` for the active and a historical key."""
    return {
        HISTORICAL_KEY_ID: rsa.generate_private_key(public_exponent=65537, key_size=2048),
        SIGNING_KEY_ID: rsa.generate_private_key(public_exponent=65537, key_size=2048),
    }


@pytest.fixture(scope="session")
def key_registry(signing_keys):
    """Registry signing with ``test-k2`` and still trusting ``test-k1``."""
    return KeyRegistry.from_keys(
        key_id=SIGNING_KEY_ID,
        private_key=signing_keys[SIGNING_KEY_ID],
        trusted={HISTORICAL_KEY_ID: signing_keys[HISTORICAL_KEY_ID].public_key()},
    )


@pytest.fixture(scope="session")
def app(key_registry):
    """App wired to the test key registry."""
    app = create_app(TestConfig, key_registry=key_registry)
    app.logger.setLevel("WARNING")
    return app


@pytest.fixture(scope="session")
def db(app):
    """Create database tables once per test session."""
    with app.app_context():
        _db.create_all()
        yield _db
        _db.session.remove()
        _db.drop_all()


@pytest.fixture(scope="session")
def connection(db):
    """Keep a dedicated DBAPI connection open for the whole session."""
    conn = db.engine.connect()
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture(scope="function")
def session(db, connection):
    """Scoped session bound to the shared connection, swapped into ``db.session``.

    An outer transaction is rolled back after the test; a SAVEPOINT is
    reopened each time one ends. Units of work committing inside
    a test only release their own SAVEPOINT.
    """
    top_trans = connection.begin()

    SessionFactory = sessionmaker(bind=connection, future=True)
    scoped = scoped_session(SessionFactory)

    nested = connection.begin_nested()

    @event.listens_for(scoped(), "after_transaction_end")
    def _restart_savepoint(sess, trans):  # pragma: no cover
        if trans.nested and not trans._parent.nested:
            nonlocal nested
            nested = connection.begin_nested()

    original_session = db.session
    db.session.remove()
    db.session = scoped

    try:
        yield scoped
    finally:
        scoped.remove()
        db.session = original_session
        top_trans.rollback()


@pytest.fixture(scope="session")
def faker():
    """Seeded :class:`faker.Faker`."""
    from faker import Faker

    fk = Faker()
    Faker.seed(1337)
    return fk


@pytest.fixture()
def client(app, session):
    """Flask test client sharing the transactional session."""
    return app.test_client()


@pytest.fixture()
def token_provider(app) -> JWTTokenProvider:
    return JWTTokenProvider()


@pytest.fixture(scope="session")
def key_cipher() -> KeyCipher:
    return KeyCipher(ENCRYPTION_SECRET)


@pytest.fixture()
def transfer_client(app):
    """Install a :class:`FakeTransferClient` as the app-wide token client."""
    from custody.api.deps import TRANSFER_CLIENT_EXTENSION

    fake = FakeTransferClient()
    previous = app.extensions.get(TRANSFER_CLIENT_EXTENSION)
    app.extensions[TRANSFER_CLIENT_EXTENSION] = fake
    yield fake
    if previous is None:
        app.extensions.pop(TRANSFER_CLIENT_EXTENSION, None)
    else:
        app.extensions[TRANSFER_CLIENT_EXTENSION] = previous


@pytest.fixture(autouse=True)
def _factories_session(session):
    """Point factories at the per-test session."""
    from tests.factories import SQLAlchemySession

    SQLAlchemySession.set(session)
    yield
