# custody/services/auth/service.py
from __future__ import annotations

import logging
from dataclasses import replace

from sqlalchemy.exc import IntegrityError

from custody.models.user import User
from custody.models.wallet import Wallet
from custody.services._shared.base import BaseService
from custody.services._shared.errors import (
    ConflictError,
    CredentialError,
    ErrorKind,
    NotFoundError,
    violates,
)
from custody.services._shared.ports.token_provider import IssuedTokens, TokenProvider
from custody.services._shared.ports.wallet_provisioner import WalletProvisioner
from custody.services.auth.dto import RefreshIn, SessionOut, SignInIn, SignUpIn
from custody.services.auth.ledger import RefreshRotationLedger, RotationResult

log = logging.getLogger(__name__)


class AuthService(BaseService):
    """
    Session lifecycle service (sign-up, sign-in, refresh, logout, authenticate).

    Tokens are minted and verified through a pluggable :class:`TokenProvider`;
    refresh tokens are single-use and tracked by the
    :class:`~custody.services.auth.ledger.RefreshRotationLedger`.
    """

    def __init__(
        self,
        *,
        token_provider: TokenProvider,
        wallet_provisioner: WalletProvisioner | None = None,
    ) -> None:
        """
        Initialize the service with its dependencies.

        :param token_provider: Adapter for issuing/verifying JWTs.
        :param wallet_provisioner: Wallet generator; required by :meth:`sign_up`.
        """
        super().__init__()
        self.tokens = token_provider
        self.wallets = wallet_provisioner
        self.ledger = RefreshRotationLedger(token_provider=token_provider)

    # ------------------------------------------------------------------ #
    # Session start
    # ------------------------------------------------------------------ #

    def start_session(self, user_id: int) -> SessionOut:
        """
        Issue a first token pair for ``user_id`` (after sign-up or sign-in).

        Prior active refresh tokens of the user are rotated so that at most
        one remains active.

        :raises NotFoundError: If the user does not exist.
        """
        with self.rw_uow() as uow:
            if uow.users.get(user_id) is None:
                raise NotFoundError("User", user_id)
            issued = self.ledger.start(uow, user_id, now=self.now_utc())
        log.info("auth.session_started user_id=%s", user_id)
        return self._to_session(user_id, issued)

    def sign_up(self, dto: SignUpIn) -> SessionOut:
        """
        Register a user together with a freshly generated custodial wallet.

        The wallet key is generated and sealed before the transaction opens;
        user, wallet and first refresh record are committed together.

        :raises ConflictError: ``already_exists`` if the email is registered.
        """
        if self.wallets is None:
            raise RuntimeError("sign_up requires a wallet provisioner.")
        provisioned = self.wallets.provision()

        try:
            with self.rw_uow() as uow:
                if uow.users.get_by_email(dto.email) is not None:
                    raise _email_taken()
                user = User(email=dto.email, display_name=dto.display_name)
                user.password = dto.password
                uow.users.add(user)
                uow.wallets.add(
                    Wallet(
                        user_id=user.id,
                        address=provisioned.address,
                        encrypted_private_key=provisioned.encrypted_private_key,
                    )
                )
                user_id = user.id
                issued = self.ledger.start(uow, user_id, now=self.now_utc())
        except IntegrityError as exc:
            if violates(exc, "uq_users_email") or violates(exc, "users.email"):
                raise _email_taken() from exc
            raise

        log.info("auth.signed_up user_id=%s wallet=%s", user_id, provisioned.address)
        return replace(self._to_session(user_id, issued), wallet_address=provisioned.address)

    def sign_in(self, dto: SignInIn) -> SessionOut:
        """
        Authenticate credentials and start a session.

        :raises CredentialError: If email or password is wrong (same error for both).
        """
        with self.ro_uow() as uow:
            user = uow.users.authenticate(dto.email, dto.password)
            if user is None:
                raise CredentialError("Invalid credentials")
            user_id = user.id
        return self.start_session(user_id)

    # ------------------------------------------------------------------ #
    # Refresh with rotation
    # ------------------------------------------------------------------ #

    def refresh_session(self, dto: RefreshIn) -> SessionOut:
        """
        Exchange a refresh token for a new pair.

        Security
        --------
        - Every refresh token is single-use.
        - Replaying a consumed token revokes the user's whole session family.
          The revocation is committed before the error is raised.

        :raises CredentialError: ``kind`` is ``invalid_credential``,
            ``refresh_reused`` or ``refresh_expired``.
        """
        raw = dto.refresh_token
        claims = self.tokens.verify_refresh_token(raw, allow_expired=True)
        if claims is None:
            raise CredentialError("Invalid refresh token")

        # Side effects (revocations) commit on leaving the block; errors are raised after.
        with self.rw_uow() as uow:
            outcome = self.ledger.rotate(uow, raw, claims, now=self.now_utc())

        if outcome.result is RotationResult.REUSED:
            raise CredentialError(
                "Refresh token reuse detected. Please sign in again.",
                kind=ErrorKind.REFRESH_REUSED,
            )
        if outcome.result is RotationResult.EXPIRED:
            raise CredentialError("Refresh token expired", kind=ErrorKind.REFRESH_EXPIRED)
        if (
            outcome.result is not RotationResult.OK
            or outcome.tokens is None
            or outcome.user_id is None
        ):
            raise CredentialError("Invalid refresh token")

        return self._to_session(outcome.user_id, outcome.tokens)

    # ------------------------------------------------------------------ #
    # Logout
    # ------------------------------------------------------------------ #

    def revoke_sessions(self, user_id: int) -> int:
        """
        Rotate every active refresh token of ``user_id``.

        :returns: Number of refresh tokens revoked.
        """
        with self.rw_uow() as uow:
            revoked = self.ledger.revoke_all(uow, user_id, now=self.now_utc())
        log.info("auth.sessions_revoked user_id=%s revoked=%s", user_id, revoked)
        return revoked

    # ------------------------------------------------------------------ #
    # Access tokens
    # ------------------------------------------------------------------ #

    def authenticate(self, access_token: str) -> int:
        """
        Return the user id carried by a valid access token.

        :raises CredentialError: If the token is invalid for any reason.
        """
        claims = self.tokens.verify_access_token(access_token)
        if claims is None:
            raise CredentialError("Invalid access token")
        return self._coerce_user_id(claims.subject)

    # ------------------------------------------------------------------ #
    # Utilities
    # ------------------------------------------------------------------ #

    @staticmethod
    def _coerce_user_id(subject: str) -> int:
        """Ensure the JWT subject can be treated as an integer user id."""
        if subject.isdigit():
            return int(subject)
        raise CredentialError("Invalid token subject")

    @staticmethod
    def _to_session(user_id: int, issued: IssuedTokens) -> SessionOut:
        return SessionOut(
            user_id=user_id,
            access_token=issued.access_token,
            refresh_token=issued.refresh_token,
            refresh_expires_at=issued.refresh_claims.expires_at,
        )


def _email_taken() -> ConflictError:
    return ConflictError("User", "Email is already registered", kind=ErrorKind.ALREADY_EXISTS)
