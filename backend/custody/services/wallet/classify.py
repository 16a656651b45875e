"""Map transfer execution failures to :class:`ErrorKind`.

Structured signals (exception type, HTTP status, JSON-RPC code, decoded revert
selector) are checked first. Message substrings are only a fallback for nodes
that report reverts as plain text; they are advisory and may drift.
"""

from __future__ import annotations

from custody.infra.rpc.erc20_client import RpcError
from custody.infra.rpc.transport import TransportError
from custody.services._shared.errors import ErrorKind, TransferError
from custody.services._shared.ports.key_decryptor import DecryptionError

# JSON-RPC "limit exceeded" (EIP-1474)
RPC_LIMIT_EXCEEDED = -32005

_REVERT_KINDS = {
    "ERC20InvalidReceiver": ErrorKind.INVALID_RECEIVER,
    "ERC20InsufficientAllowance": ErrorKind.INSUFFICIENT_ALLOWANCE,
    "ERC20InsufficientBalance": ErrorKind.INSUFFICIENT_BALANCE,
}

_SUBSTRING_KINDS: tuple[tuple[str, ErrorKind], ...] = (
    ("erc20invalidreceiver", ErrorKind.INVALID_RECEIVER),
    ("insufficientallowance", ErrorKind.INSUFFICIENT_ALLOWANCE),
    ("caller is not the spender", ErrorKind.INSUFFICIENT_ALLOWANCE),
    ("nonce too low", ErrorKind.TRANSFER_REJECTED),
    ("replacement fee too low", ErrorKind.TRANSFER_REJECTED),
    ("replacement transaction underpriced", ErrorKind.TRANSFER_REJECTED),
    ("rate limit", ErrorKind.TRANSPORT_RETRYABLE),
    ("too many requests", ErrorKind.TRANSPORT_RETRYABLE),
    ("bad gateway", ErrorKind.TRANSPORT_RETRYABLE),
    ("service unavailable", ErrorKind.TRANSPORT_RETRYABLE),
    ("gateway timeout", ErrorKind.TRANSPORT_RETRYABLE),
    ("timeout", ErrorKind.TRANSPORT_RETRYABLE),
    ("network error", ErrorKind.TRANSPORT_RETRYABLE),
)

MESSAGES = {
    ErrorKind.INVALID_RECEIVER: "Destination address is invalid for token transfers",
    ErrorKind.INSUFFICIENT_ALLOWANCE: "Insufficient allowance for token transfer",
    ErrorKind.INSUFFICIENT_BALANCE: "Insufficient token balance",
    ErrorKind.TRANSFER_REJECTED: "Transfer was rejected by the network",
    ErrorKind.TRANSPORT_RETRYABLE: "Network timeout, please retry later",
    ErrorKind.INTERNAL: "Failed to transfer tokens",
}


def classify_transfer_failure(exc: BaseException) -> ErrorKind:
    """Return the :class:`ErrorKind` describing ``exc``."""
    if isinstance(exc, TransferError):
        return exc.kind
    if isinstance(exc, DecryptionError):
        return ErrorKind.INTERNAL
    if isinstance(exc, TransportError):
        return ErrorKind.TRANSPORT_RETRYABLE if exc.retryable else ErrorKind.INTERNAL
    if isinstance(exc, RpcError):
        reason = exc.revert_reason
        if reason is not None:
            return _REVERT_KINDS[reason]
        if exc.code == RPC_LIMIT_EXCEEDED:
            return ErrorKind.TRANSPORT_RETRYABLE

    text = str(exc).lower()
    for needle, kind in _SUBSTRING_KINDS:
        if needle in text:
            return kind
    return ErrorKind.INTERNAL


def to_transfer_error(exc: BaseException) -> TransferError:
    """Translate ``exc`` into a client-safe :class:`TransferError`."""
    if isinstance(exc, TransferError):
        return exc
    kind = classify_transfer_failure(exc)
    return TransferError(
        MESSAGES.get(kind, MESSAGES[ErrorKind.INTERNAL]),
        kind=kind,
        retryable=kind is ErrorKind.TRANSPORT_RETRYABLE,
    )
