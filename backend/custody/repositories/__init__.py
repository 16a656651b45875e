"""Repository package exposing persistence-layer access for all domain models."""

from __future__ import annotations

from custody.repositories.base import BaseRepository
from custody.repositories.refresh_token import RefreshTokenRepository
from custody.repositories.transfer_request import TransferRequestRepository
from custody.repositories.user import UserRepository
from custody.repositories.wallet import WalletRepository

__all__ = [
    "BaseRepository",
    "RefreshTokenRepository",
    "TransferRequestRepository",
    "UserRepository",
    "WalletRepository",
]
