# custody/services/wallet/dto.py
from __future__ import annotations

from dataclasses import dataclass

from custody.models.transfer_request import TransferStatus


@dataclass(frozen=True, slots=True)
class TransferIn:
    """
    Input DTO for a token transfer.

    :param user_id: Owner of the source wallet.
    :type user_id: int
    :param amount: Positive decimal string in human units (e.g. ``"1.5"``).
    :type amount: str
    :param destination_address: ``0x``-prefixed 20-byte hex address.
    :type destination_address: str
    :param idempotency_key: Client key; when present, retries are deduplicated.
    :type idempotency_key: str | None
    """

    user_id: int
    amount: str
    destination_address: str
    idempotency_key: str | None = None


@dataclass(frozen=True, slots=True)
class TransferOut:
    """Result of a transfer: ``completed`` with a hash, or ``pending``."""

    status: TransferStatus
    transaction_hash: str | None = None

    @classmethod
    def completed(cls, transaction_hash: str) -> TransferOut:
        return cls(status=TransferStatus.COMPLETED, transaction_hash=transaction_hash)

    @classmethod
    def pending(cls) -> TransferOut:
        return cls(status=TransferStatus.PENDING)
