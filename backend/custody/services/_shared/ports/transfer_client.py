from __future__ import annotations

from typing import Protocol


class Signer(Protocol):
    """Minimal view of a local signing account."""

    @property
    def address(self) -> str: ...


class TokenTransferClient(Protocol):
    """Port for the on-chain ERC-20 capability used by transfers.

    Amounts are integers in the token's base units.
    """

    def decimals(self) -> int: ...

    def balance_of(self, address: str) -> int: ...

    def build_signer(self, private_key: str) -> Signer: ...

    def transfer(self, signer: Signer, to: str, amount: int) -> str:
        """Broadcast a transfer and return its transaction hash."""
        ...
