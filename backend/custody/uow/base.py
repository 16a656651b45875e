"""
Abstract Unit of Work contract.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from custody.repositories import (
        RefreshTokenRepository,
        TransferRequestRepository,
        UserRepository,
        WalletRepository,
    )


class UnitOfWork(ABC):
    """
    Transactional boundary shared by the repositories of one use case.

    Read-write implementations commit when the block exits cleanly and roll
    back on error; read-only ones always roll back what they own.
    """

    users: UserRepository
    wallets: WalletRepository
    refresh_tokens: RefreshTokenRepository
    transfer_requests: TransferRequestRepository

    @abstractmethod
    def __enter__(self) -> UnitOfWork: ...
    @abstractmethod
    def __exit__(self, exc_type, exc, tb) -> None: ...
    @abstractmethod
    def commit(self) -> None: ...
    @abstractmethod
    def rollback(self) -> None: ...
