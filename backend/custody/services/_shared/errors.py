"""
Domain-level exceptions used within the service layer.

These exceptions are **framework-agnostic** and should never import or depend
on Flask or HTTP directly. They serve as stable contracts between
repositories, ledgers and application services.

Every error carries an :class:`ErrorKind`; the translation to HTTP responses
(RFC 7807) is handled by ``custody/core/errors.py``.
"""

from __future__ import annotations

from enum import StrEnum

from sqlalchemy.exc import IntegrityError


def violates(exc: IntegrityError, constraint_name: str) -> bool:
    """
    Check whether an IntegrityError originates from a specific constraint.

    Parameters
    ----------
    exc : IntegrityError
        The exception raised by SQLAlchemy during flush/commit.
    constraint_name : str
        The name of the database constraint to match
        (e.g., ``"uq_refresh_tokens_token_hash"``). SQLite reports
        column names instead (``"refresh_tokens.token_hash"``).

    Returns
    -------
    bool
        True if the IntegrityError matches the given constraint.
    """
    message = str(exc.orig).lower() if exc.orig else ""
    return constraint_name.lower() in message


class ErrorKind(StrEnum):
    """Closed set of failure categories surfaced by the services."""

    INVALID_CREDENTIAL = "invalid_credential"
    REFRESH_REUSED = "refresh_reused"
    REFRESH_EXPIRED = "refresh_expired"
    IDEMPOTENCY_CONFLICT = "idempotency_conflict"
    ALREADY_EXISTS = "already_exists"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    INVALID_RECEIVER = "invalid_receiver"
    INSUFFICIENT_ALLOWANCE = "insufficient_allowance"
    TRANSFER_REJECTED = "transfer_rejected"
    TRANSPORT_RETRYABLE = "transport_retryable"
    NOT_FOUND = "not_found"
    BAD_REQUEST = "bad_request"
    INTERNAL = "internal"


# --------------------------------------------------------------------------- #
# Base types
# --------------------------------------------------------------------------- #


class ServiceError(Exception):
    """
    Base class for all service-level errors.

    Notes
    -----
    - These are *not* HTTP errors.
    - They can be safely raised from repositories or domain logic.
    - The API layer translates them by ``kind``.
    """

    default_kind: ErrorKind = ErrorKind.BAD_REQUEST

    def __init__(self, message: str, *, kind: ErrorKind | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind or self.default_kind


# --------------------------------------------------------------------------- #
# Specific domain-level errors
# --------------------------------------------------------------------------- #


class CredentialError(ServiceError):
    """
    Raised when a credential (password, access or refresh token) is rejected.

    ``kind`` is one of ``invalid_credential``, ``refresh_reused`` or
    ``refresh_expired``.
    """

    default_kind = ErrorKind.INVALID_CREDENTIAL


class NotFoundError(ServiceError):
    """
    Raised when an entity is not found in the repository.

    :param entity: Entity name (e.g., "Wallet").
    :type entity: str
    :param key: Identifier or search key.
    :type key: str | int
    """

    default_kind = ErrorKind.NOT_FOUND

    def __init__(self, entity: str, key: str | int) -> None:
        super().__init__(f"{entity} not found: {key}")
        self.entity = entity
        self.key = key


class ConflictError(ServiceError):
    """
    Raised when a request collides with prior state under the same key.

    :param entity: Entity name (e.g., "TransferRequest").
    :type entity: str
    :param detail: Short human-readable explanation.
    :type detail: str
    """

    default_kind = ErrorKind.IDEMPOTENCY_CONFLICT

    def __init__(self, entity: str, detail: str, *, kind: ErrorKind | None = None) -> None:
        super().__init__(f"Conflict on {entity}: {detail}", kind=kind)
        self.entity = entity
        self.detail = detail


class TransferError(ServiceError):
    """
    Raised when executing an on-chain transfer fails.

    :param message: Client-safe explanation.
    :param kind: Classified failure category.
    :param retryable: ``True`` when the same request may succeed later.
    """

    default_kind = ErrorKind.INTERNAL

    def __init__(
        self, message: str, *, kind: ErrorKind | None = None, retryable: bool = False
    ) -> None:
        super().__init__(message, kind=kind)
        self.retryable = retryable
