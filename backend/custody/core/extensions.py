"""Global Flask extension instances and initialization helpers."""

from __future__ import annotations

from typing import Any

from flask import Flask, current_app
from flask_jwt_extended import JWTManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import MetaData

from custody.infra.jwt.key_registry import KeyRegistry

# Global naming convention for all constraints; repositories match
# IntegrityErrors against these names.
convention = {
    "ix": "ix_%(table_name)s_%(column_0_name)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=convention)

# Global singletons (import-safe)
db: SQLAlchemy = SQLAlchemy(session_options={"autoflush": False}, metadata=metadata)
migrate = Migrate(render_as_batch=True)
jwt = JWTManager()

KEY_REGISTRY_EXTENSION = "key_registry"


def init_app(app: Flask, *, key_registry: KeyRegistry | None = None) -> None:
    """Initialize SQLAlchemy, migrations, JWT handling and the key registry.

    Parameters
    ----------
    app: flask.Flask
        Application used to bind extension instances. This call imports the
        :mod:`custody.models` package to ensure SQLAlchemy metadata is ready
        for migrations.
    key_registry: KeyRegistry | None
        Pre-built registry (tests, key rotation drills). When omitted the
        registry is loaded from ``app.config`` once, here, at startup.
    """
    db.init_app(app)

    # Ensure models are imported so Alembic sees metadata
    from custody import models as _models  # noqa: F401

    migrate.init_app(app, db)
    jwt.init_app(app)

    registry = key_registry or KeyRegistry.from_config(app.config)
    app.extensions[KEY_REGISTRY_EXTENSION] = registry


def get_key_registry() -> KeyRegistry:
    """Return the key registry bound to the current application."""
    registry = current_app.extensions.get(KEY_REGISTRY_EXTENSION)
    if registry is None:
        raise RuntimeError("Key registry is not initialized. Call init_app() first.")
    return registry


@jwt.encode_key_loader
def _signing_key(identity: Any) -> Any:
    """Sign every token with the single active key."""
    return get_key_registry().signing_key.private_key


@jwt.decode_key_loader
def _verification_key(jwt_header: dict[str, Any], jwt_payload: dict[str, Any]) -> Any:
    """Resolve the trusted public key named by the token's ``kid`` header.

    :raises UntrustedKeyError: When ``kid`` is absent or not trusted.
    """
    return get_key_registry().verification_key(jwt_header.get("kid"))
