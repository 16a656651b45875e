from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True, slots=True)
class ProvisionedWallet:
    """A freshly generated account, private key already encrypted at rest."""

    address: str
    encrypted_private_key: str


class WalletProvisioner(Protocol):
    """Port for generating custodial wallets."""

    def provision(self) -> ProvisionedWallet: ...
