"""Shared API helpers: responses, timing, authentication and service wiring."""

from __future__ import annotations

import functools
import time
from collections.abc import Callable
from typing import Any, TypeVar

from flask import Response, current_app, g, jsonify, request

from custody.core.errors import Unauthorized
from custody.infra.crypto.key_cipher import KeyCipher
from custody.infra.crypto.wallet_provisioner import LocalWalletProvisioner
from custody.infra.jwt.flask_jwt_token_provider import JWTTokenProvider
from custody.infra.rpc.erc20_client import Erc20RpcClient
from custody.services._shared.ports import TokenTransferClient
from custody.services.auth.service import AuthService
from custody.services.wallet.service import TransferService

F = TypeVar("F", bound=Callable[..., Any])

TRANSFER_CLIENT_EXTENSION = "transfer_client"
KEY_CIPHER_EXTENSION = "key_cipher"


# --------------------------------------------------------------------------- #
# Service wiring
# --------------------------------------------------------------------------- #


def get_key_cipher() -> KeyCipher:
    """Return the app-wide :class:`KeyCipher`, built from config on first use."""
    cipher = current_app.extensions.get(KEY_CIPHER_EXTENSION)
    if cipher is None:
        cipher = KeyCipher.from_config(current_app.config)
        current_app.extensions[KEY_CIPHER_EXTENSION] = cipher
    return cipher


def get_transfer_client() -> TokenTransferClient:
    """Return the app-wide token client; one instance keeps the decimals cache."""
    client = current_app.extensions.get(TRANSFER_CLIENT_EXTENSION)
    if client is None:
        client = Erc20RpcClient.from_config(current_app.config)
        current_app.extensions[TRANSFER_CLIENT_EXTENSION] = client
    return client


def build_auth_service() -> AuthService:
    return AuthService(
        token_provider=JWTTokenProvider(),
        wallet_provisioner=LocalWalletProvisioner(get_key_cipher()),
    )


def build_transfer_service() -> TransferService:
    return TransferService(
        transfer_client=get_transfer_client(),
        key_decryptor=get_key_cipher(),
        lease_seconds=int(current_app.config["TRANSFER_LEASE_SECONDS"]),
    )


# --------------------------------------------------------------------------- #
# Authentication
# --------------------------------------------------------------------------- #


def _bearer_token() -> str:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthorized("Missing bearer token")
    return token.strip()


def require_access_token(func: F) -> F:
    """Authenticate the bearer access token and expose ``g.user_id``."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        token = _bearer_token()
        g.user_id = AuthService(token_provider=JWTTokenProvider()).authenticate(token)
        return func(*args, **kwargs)

    return wrapper  # type: ignore[return-value]


# --------------------------------------------------------------------------- #
# Responses
# --------------------------------------------------------------------------- #


def json_response(payload: Any, *, status: int = 200) -> Response:
    """Return a JSON response enforcing a consistent MIME type."""
    response = jsonify(payload)
    response.status_code = status
    return response


def timing(func: F) -> F:
    """Decorator capturing handler execution time in milliseconds."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        start = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            current_app.logger.debug(
                "request.elapsed",
                extra={"endpoint": request.endpoint, "elapsed_ms": round(elapsed_ms, 2)},
            )

    return wrapper  # type: ignore[return-value]
