"""Tests for the Wallet model."""

from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError

from custody.models.wallet import Wallet
from tests.factories.wallet import WalletFactory


class TestWallet:
    @pytest.mark.parametrize("address", ["", "0x1234", "11" * 21, "0x" + "a" * 41])
    def test_address_shape_is_validated(self, address):
        with pytest.raises(ValueError):
            Wallet(user_id=1, address=address, encrypted_private_key="blob")

    def test_address_is_unique(self, session):
        first = WalletFactory()
        session.commit()

        session.add(Wallet(user_id=first.user_id, address=first.address, encrypted_private_key="x"))
        with pytest.raises(IntegrityError):
            session.commit()
