# custody/services/wallet/service.py
from __future__ import annotations

import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from custody.models.transfer_request import TransferRequest
from custody.repositories.transfer_request import UNIQUE_KEY_COLUMNS, UNIQUE_KEY_CONSTRAINT
from custody.services._shared.base import BaseService
from custody.services._shared.errors import (
    ConflictError,
    ErrorKind,
    NotFoundError,
    ServiceError,
    TransferError,
    violates,
)
from custody.services._shared.hashing import sha256_hex
from custody.services._shared.ports.key_decryptor import KeyDecryptor
from custody.services._shared.ports.transfer_client import TokenTransferClient
from custody.services.wallet.classify import to_transfer_error
from custody.services.wallet.dto import TransferIn, TransferOut
from custody.uow.sqlalchemy_uow import SQLAlchemyUnitOfWork

log = logging.getLogger(__name__)

_AMOUNT_RE = re.compile(r"^[0-9]+(\.[0-9]+)?$")
_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")

DEFAULT_LEASE_SECONDS = 300


def parse_units(amount: str, decimals: int) -> int:
    """
    Convert a decimal string in human units to integer base units.

    :raises ServiceError: If ``amount`` is not a positive decimal string or
        carries more significant fractional digits than ``decimals``.
    """
    if not isinstance(amount, str) or not _AMOUNT_RE.match(amount):
        raise ServiceError("Amount must be a positive decimal string")
    whole, _, fraction = amount.partition(".")
    fraction = fraction.rstrip("0")
    if len(fraction) > decimals:
        raise ServiceError(f"Amount supports at most {decimals} decimal places")
    units = int(whole) * 10**decimals + int(fraction.ljust(decimals, "0") or "0")
    if units <= 0:
        raise ServiceError("Amount must be greater than zero")
    return units


def new_lease_token() -> str:
    return secrets.token_hex(16)


@dataclass(frozen=True, slots=True)
class _Lease:
    """Right to execute one reservation, proven by ``token``."""

    request_id: int
    token: str


class _LeaseLost(Exception):
    """Another request took the reservation over before the broadcast."""


class TransferService(BaseService):
    """
    Idempotent token transfers from custodial wallets.

    With an idempotency key, a reservation row keyed by
    ``(user_id, sha256(key))`` guarantees at most one broadcast: only the
    holder of the reservation's lease executes, every other caller sees the
    stored hash or ``pending``. RPC work never runs inside a transaction.
    """

    def __init__(
        self,
        *,
        transfer_client: TokenTransferClient,
        key_decryptor: KeyDecryptor,
        lease_seconds: int = DEFAULT_LEASE_SECONDS,
    ) -> None:
        """
        :param transfer_client: On-chain capability (decimals, balance, broadcast).
        :param key_decryptor: At-rest decryption of wallet private keys.
        :param lease_seconds: How long an execution lease stays live.
        """
        super().__init__()
        self.client = transfer_client
        self.keys = key_decryptor
        self.lease_ttl = timedelta(seconds=lease_seconds)

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def transfer(self, dto: TransferIn) -> TransferOut:
        """
        Transfer ``dto.amount`` tokens from the user's wallet.

        :raises ServiceError: ``bad_request`` for malformed input.
        :raises NotFoundError: If the user has no wallet.
        :raises ConflictError: If the key was used with a different payload.
        :raises TransferError: Classified execution failure.
        """
        if not isinstance(dto.destination_address, str) or not _ADDRESS_RE.match(
            dto.destination_address
        ):
            raise ServiceError("Destination address must be a 20-byte hex string")
        if not isinstance(dto.amount, str) or not _AMOUNT_RE.match(dto.amount):
            raise ServiceError("Amount must be a positive decimal string")

        with self.ro_uow() as uow:
            wallet = uow.wallets.get_by_user(dto.user_id)
            if wallet is None:
                raise NotFoundError("Wallet", dto.user_id)
            wallet_address = wallet.address
            encrypted_key = wallet.encrypted_private_key

        key_hash = sha256_hex(dto.idempotency_key) if dto.idempotency_key else None
        if key_hash is not None:
            # Replays are answered from the store alone, even with the node down.
            settled = self._replay(dto, key_hash)
            if settled is not None:
                return settled

        try:
            decimals = self.client.decimals()
        except Exception as exc:
            raise to_transfer_error(exc) from exc
        units = parse_units(dto.amount, decimals)

        lease: _Lease | None = None
        if key_hash is not None:
            reserved = self._reserve(dto, key_hash)
            if isinstance(reserved, TransferOut):
                return reserved
            lease = reserved

        try:
            tx_hash = self._execute(
                wallet_address, encrypted_key, dto.destination_address, units, lease
            )
        except _LeaseLost as lost:
            # The new holder broadcasts; nothing of ours to release.
            log.warning(
                "transfer.lease_lost_before_broadcast user_id=%s request_id=%s",
                dto.user_id,
                lost.args[0],
            )
            return TransferOut.pending()
        except Exception as exc:
            if lease is not None:
                self._release(lease)
            error = to_transfer_error(exc)
            log.error(
                "transfer.failed user_id=%s kind=%s error=%s",
                dto.user_id,
                error.kind,
                type(exc).__name__,
            )
            raise error from exc

        log.info(
            "transfer.broadcast user_id=%s destination=%s tx_hash=%s",
            dto.user_id,
            dto.destination_address,
            tx_hash,
        )
        if lease is not None:
            self._complete(lease, tx_hash)
        return TransferOut.completed(tx_hash)

    # ------------------------------------------------------------------ #
    # Reservation
    # ------------------------------------------------------------------ #

    def _replay(self, dto: TransferIn, key_hash: str) -> TransferOut | None:
        """Answer from an existing reservation without a lock; ``None`` when
        this call may have to execute."""
        with self.ro_uow() as uow:
            existing = uow.transfer_requests.get_for_key(dto.user_id, key_hash, for_update=False)
            if existing is None:
                return None
            return self._settled(existing, dto, self.now_utc())

    @staticmethod
    def _settled(existing: TransferRequest, dto: TransferIn, now: datetime) -> TransferOut | None:
        """
        Outcome of a reservation that this call must not execute.

        :raises ConflictError: If the key was first used with another payload.
        :returns: The stored hash, ``pending`` while another lease is live,
            or ``None`` when the reservation is free to take over.
        """
        if not existing.matches(amount=dto.amount, destination_address=dto.destination_address):
            raise ConflictError(
                "TransferRequest", "Idempotency key already used with different payload"
            )
        if existing.is_completed and existing.transaction_hash:
            log.info(
                "transfer.replayed user_id=%s tx_hash=%s", dto.user_id, existing.transaction_hash
            )
            return TransferOut.completed(existing.transaction_hash)
        if existing.lease_is_live(now):
            log.info("transfer.in_progress user_id=%s request_id=%s", dto.user_id, existing.id)
            return TransferOut.pending()
        return None

    def _reserve(self, dto: TransferIn, key_hash: str) -> TransferOut | _Lease:
        """
        Claim the reservation for ``key_hash`` or report its state.

        Returns a :class:`_Lease` when this call must execute the transfer,
        otherwise the :class:`TransferOut` to hand back to the client.
        """
        now = self.now_utc()
        token = new_lease_token()
        expires_at = now + self.lease_ttl

        with self.rw_uow() as uow:
            repo = uow.transfer_requests
            existing = repo.get_for_key(dto.user_id, key_hash)
            if existing is None:
                try:
                    with uow.savepoint():
                        record = repo.add(
                            TransferRequest(
                                user_id=dto.user_id,
                                idempotency_key_hash=key_hash,
                                amount=dto.amount,
                                destination_address=dto.destination_address,
                                lease_token=token,
                                lease_expires_at=expires_at,
                            )
                        )
                    log.info("transfer.reserved user_id=%s request_id=%s", dto.user_id, record.id)
                    return _Lease(request_id=record.id, token=token)
                except IntegrityError as exc:
                    if not (violates(exc, UNIQUE_KEY_CONSTRAINT) or violates(exc, UNIQUE_KEY_COLUMNS)):
                        raise
                    existing = repo.get_for_key(dto.user_id, key_hash)
                    if existing is None:
                        raise TransferError("Failed to reserve transfer request") from exc

            return self._resolve_existing(uow, existing, dto, token, expires_at, now)

    def _resolve_existing(
        self,
        uow: SQLAlchemyUnitOfWork,
        existing: TransferRequest,
        dto: TransferIn,
        token: str,
        expires_at: datetime,
        now: datetime,
    ) -> TransferOut | _Lease:
        settled = self._settled(existing, dto, now)
        if settled is not None:
            return settled
        if uow.transfer_requests.take_over_lease(
            existing.id, lease_token=token, expires_at=expires_at, now=now
        ):
            log.info("transfer.lease_taken_over user_id=%s request_id=%s", dto.user_id, existing.id)
            return _Lease(request_id=existing.id, token=token)
        return TransferOut.pending()

    # ------------------------------------------------------------------ #
    # Execution
    # ------------------------------------------------------------------ #

    def _execute(
        self,
        wallet_address: str,
        encrypted_key: str,
        to: str,
        units: int,
        lease: _Lease | None,
    ) -> str:
        private_key = self.keys.decrypt(encrypted_key)
        signer = self.client.build_signer(private_key)
        balance = self.client.balance_of(wallet_address)
        if balance < units:
            raise TransferError("Insufficient token balance", kind=ErrorKind.INSUFFICIENT_BALANCE)
        if lease is not None and not self._renew(lease):
            raise _LeaseLost(lease.request_id)
        return self.client.transfer(signer, to, units)

    def _renew(self, lease: _Lease) -> bool:
        """Restart the lease clock for the broadcast; ``False`` if it was taken over."""
        with self.rw_uow() as uow:
            return uow.transfer_requests.renew_lease(
                lease.request_id,
                lease_token=lease.token,
                expires_at=self.now_utc() + self.lease_ttl,
            )

    def _complete(self, lease: _Lease, tx_hash: str) -> None:
        with self.rw_uow() as uow:
            done = uow.transfer_requests.complete(
                lease.request_id, lease_token=lease.token, transaction_hash=tx_hash
            )
        if not done:
            log.warning(
                "transfer.complete_lease_lost request_id=%s tx_hash=%s", lease.request_id, tx_hash
            )

    def _release(self, lease: _Lease) -> None:
        try:
            with self.rw_uow() as uow:
                uow.transfer_requests.release_lease(lease.request_id, lease_token=lease.token)
        except SQLAlchemyError:
            log.exception("transfer.lease_release_failed request_id=%s", lease.request_id)
