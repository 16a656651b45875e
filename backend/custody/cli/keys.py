"""Flask CLI commands for JWT signing key rotation."""

from __future__ import annotations

import json
import logging
import secrets
from datetime import UTC, datetime

import click
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from flask.cli import with_appcontext

from custody.core.extensions import get_key_registry

LOGGER = logging.getLogger(__name__)


def new_key_id(now: datetime | None = None) -> str:
    """Return a sortable key id such as ``k20261019-3fa2``."""
    stamp = (now or datetime.now(UTC)).strftime("%Y%m%d")
    return f"k{stamp}-{secrets.token_hex(2)}"


def generate_key_pair(bits: int = 2048) -> tuple[str, str]:
    """Return ``(private_pem, public_pem)`` for a fresh RSA key."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=bits)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()
    public_pem = (
        private_key.public_key()
        .public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        .decode()
    )
    return private_pem, public_pem


def _one_line(pem: str) -> str:
    return pem.strip().replace("\n", "\\n")


@click.group("keys")
def keys_cli() -> None:
    """Signing key management commands."""


@keys_cli.command("generate")
@click.option("--kid", default=None, help="Key id to announce (generated when omitted).")
@click.option("--bits", default=2048, show_default=True, type=click.IntRange(min=2048))
def generate(kid: str | None, bits: int) -> None:
    """Print a new RSA key pair as environment assignments.

    Roll out by adding the public key to JWT_TRUSTED_PUBLIC_KEYS first, then
    switching JWT_SIGNING_KEY_ID / JWT_PRIVATE_KEY once every node trusts it.
    """
    key_id = kid or new_key_id()
    private_pem, public_pem = generate_key_pair(bits)
    click.echo(f"JWT_SIGNING_KEY_ID={key_id}")
    click.echo(f'JWT_PRIVATE_KEY="{_one_line(private_pem)}"')
    click.echo(f'JWT_PUBLIC_KEY="{_one_line(public_pem)}"')
    click.echo(f"# merge into JWT_TRUSTED_PUBLIC_KEYS: {json.dumps({key_id: public_pem.strip()})}")
    LOGGER.info("keys.generated kid=%s bits=%s", key_id, bits)


@keys_cli.command("show")
@with_appcontext
def show() -> None:
    """Show the active signing key id and the trusted key ids."""
    registry = get_key_registry()
    click.echo(f"signing: {registry.signing_key.key_id}")
    for key_id in registry.trusted_key_ids:
        click.echo(f"trusted: {key_id}")
