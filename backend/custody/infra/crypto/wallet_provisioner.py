"""Generate custodial wallets locally with ``eth-account``."""

from __future__ import annotations

import logging

from eth_account import Account

from custody.infra.crypto.key_cipher import KeyCipher
from custody.services._shared.ports.wallet_provisioner import (
    ProvisionedWallet,
    WalletProvisioner,
)

logger = logging.getLogger(__name__)


class LocalWalletProvisioner(WalletProvisioner):
    """Create a random account and seal its key with :class:`KeyCipher`."""

    def __init__(self, cipher: KeyCipher) -> None:
        self.cipher = cipher

    def provision(self) -> ProvisionedWallet:
        account = Account.create()
        sealed = self.cipher.encrypt("0x" + bytes(account.key).hex())
        logger.info("wallet.provisioned address=%s", account.address)
        return ProvisionedWallet(address=account.address, encrypted_private_key=sealed)
