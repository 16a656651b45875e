"""Fixtures shared by the HTTP-level tests."""

from __future__ import annotations

import pytest

from tests.factories.user import DEFAULT_PASSWORD, UserFactory
from tests.factories.wallet import DEV_PRIVATE_KEY, WalletFactory


@pytest.fixture()
def user(session):
    """A committed user with :data:`DEFAULT_PASSWORD`."""
    user = UserFactory(email="holder@example.com")
    session.commit()
    return user


@pytest.fixture()
def wallet(session, user, key_cipher):
    """A committed wallet for ``user`` holding the sealed development key."""
    wallet = WalletFactory(
        user=user, encrypted_private_key=key_cipher.encrypt(DEV_PRIVATE_KEY)
    )
    session.commit()
    return wallet


@pytest.fixture()
def access_token(client, user) -> str:
    resp = client.post(
        "/api/v1/auth/sign-in", json={"email": user.email, "password": DEFAULT_PASSWORD}
    )
    assert resp.status_code == 200
    return resp.get_json()["data"]["access_token"]
