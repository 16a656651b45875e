"""
custody.services._shared.ports
==============================

Collection of *ports* (hexagonal interfaces) that the service layer depends
on. Concrete adapters live under ``custody.infra``.

Modules
-------
- :mod:`token_provider`:
    :class:`~.TokenProvider` issues and verifies session tokens.
- :mod:`transfer_client`:
    :class:`~.TokenTransferClient` reads balances and broadcasts ERC-20 transfers.
- :mod:`key_decryptor`:
    :class:`~.KeyDecryptor` opens encrypted custodial private keys.
- :mod:`wallet_provisioner`:
    :class:`~.WalletProvisioner` generates wallets with encrypted keys.
"""

from __future__ import annotations

from .key_decryptor import DecryptionError, KeyDecryptor
from .token_provider import (
    ACCESS_TOKEN_TYPE,
    REFRESH_TOKEN_TYPE,
    IssuedTokens,
    SessionTokenClaims,
    TokenProvider,
)
from .transfer_client import Signer, TokenTransferClient
from .wallet_provisioner import ProvisionedWallet, WalletProvisioner

__all__ = [
    "ACCESS_TOKEN_TYPE",
    "REFRESH_TOKEN_TYPE",
    "DecryptionError",
    "IssuedTokens",
    "KeyDecryptor",
    "ProvisionedWallet",
    "SessionTokenClaims",
    "Signer",
    "TokenProvider",
    "TokenTransferClient",
    "WalletProvisioner",
]
