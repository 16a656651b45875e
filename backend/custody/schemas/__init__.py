"""Convenience exports for application schemas."""

from __future__ import annotations

from .auth import RefreshSchema, SessionSchema, SignInSchema, SignUpSchema
from .wallet import TransferResultSchema, TransferSchema

__all__ = [
    "RefreshSchema",
    "SessionSchema",
    "SignInSchema",
    "SignUpSchema",
    "TransferResultSchema",
    "TransferSchema",
]
