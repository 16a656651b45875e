"""Application factory wiring Flask extensions and blueprints."""

from __future__ import annotations

from flask import Flask

from custody.core.config import BaseConfig, get_config
from custody.core.logger import configure_logging
from custody.core.logger import init_app as init_logging
from custody.infra.jwt.key_registry import KeyRegistry
from custody.infra.rpc.erc20_client import broadcast_budget_seconds
from custody.infra.rpc.transport import RetryPolicy


def create_app(
    config: str | type[BaseConfig] | object | None = None,
    *,
    key_registry: KeyRegistry | None = None,
    instance_relative_config: bool = True,
    instance_config_filename: str = "config.py",
) -> Flask:
    """Build and configure the Flask application.

    :param config: Config object or import path; inferred from ``APP_ENV`` when omitted.
    :param key_registry: Pre-built signing/verification keys (tests, rotation drills).
    """
    app = Flask(__name__, instance_relative_config=instance_relative_config)

    app.config.from_object(get_config() if config is None else config)
    if instance_relative_config and instance_config_filename:
        app.config.from_pyfile(instance_config_filename, silent=True)
    check_transfer_lease(app.config)

    configure_logging(app.config.get("LOG_LEVEL", "INFO"))

    from custody.core import extensions

    extensions.init_app(app, key_registry=key_registry)

    init_logging(app)

    from custody.api import init_app as init_api

    init_api(app)

    from custody.core import errors

    errors.init_app(app)

    from custody import cli as app_cli

    app_cli.init_app(app)

    return app


def check_transfer_lease(config) -> None:
    """
    Refuse to start when a transfer lease can lapse during a broadcast.

    The lease is renewed right before the broadcast, so it must outlast the
    worst-case duration of the broadcast RPC sequence.

    :raises RuntimeError: If ``TRANSFER_LEASE_SECONDS`` is too short.
    """
    lease = float(config["TRANSFER_LEASE_SECONDS"])
    budget = broadcast_budget_seconds(RetryPolicy.from_config(config))
    if lease <= budget:
        raise RuntimeError(
            f"TRANSFER_LEASE_SECONDS={lease:g} must exceed the worst-case broadcast "
            f"time of {budget:g}s (RPC_REQUEST_TIMEOUT x RPC_MAX_ATTEMPTS per call)."
        )
