"""Environment-driven settings for the custody API.

One class per deployment profile; ``APP_ENV`` selects which one
:func:`get_config` hands to the app factory.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from datetime import timedelta
from typing import Final

from dotenv import load_dotenv

ENV_VAR: Final[str] = "APP_ENV"

# A missing .env file is fine.
load_dotenv()

_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "yes", "y", "on"})


def env_bool(name: str, default: bool = False) -> bool:
    """Read an on/off flag from the environment.

    Parameters
    ----------
    name: str
        Variable name.
    default: bool, optional
        Returned when the variable is not set.

    Returns
    -------
    bool
        Whether the trimmed, lower-cased value is one of ``1/true/yes/y/on``.
    """
    raw = os.getenv(name)
    return default if raw is None else raw.strip().lower() in _TRUTHY


def env_int(name: str, default: int) -> int:
    """Parse an integer from an environment variable, falling back to ``default``."""
    val = os.getenv(name)
    if val is None or not val.strip():
        return default
    return int(val)


def env_float(name: str, default: float) -> float:
    """Parse a float from an environment variable, falling back to ``default``."""
    val = os.getenv(name)
    if val is None or not val.strip():
        return default
    return float(val)


_DURATION_UNITS: Final[dict[str, str]] = {
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
    "d": "days",
}


def parse_duration(raw: str) -> timedelta:
    """Parse a compact duration such as ``"15m"``, ``"7d"`` or ``"900"``.

    :param raw: Duration text. A bare number is read as seconds.
    :type raw: str
    :returns: Parsed duration.
    :rtype: timedelta
    :raises ValueError: If the unit is unknown or the value is not positive.
    """
    text = raw.strip().lower()
    if not text:
        raise ValueError("Duration must not be empty.")
    unit = text[-1]
    if unit.isdigit():
        amount, field = text, "seconds"
    elif unit in _DURATION_UNITS:
        amount, field = text[:-1], _DURATION_UNITS[unit]
    else:
        raise ValueError(f"Unknown duration unit in {raw!r}.")
    value = int(amount)
    if value <= 0:
        raise ValueError(f"Duration must be positive: {raw!r}.")
    return timedelta(**{field: value})


def env_duration(name: str, default: str) -> timedelta:
    """Read a compact duration (see :func:`parse_duration`) from the environment."""
    return parse_duration(os.getenv(name) or default)


def env_json_mapping(name: str) -> dict[str, str]:
    """Read a JSON object of string values from the environment (empty when unset)."""
    raw = os.getenv(name)
    if not raw or not raw.strip():
        return {}
    parsed = json.loads(raw)
    if not isinstance(parsed, dict):
        raise ValueError(f"{name} must be a JSON object.")
    return {str(k): str(v) for k, v in parsed.items()}


class BaseConfig:
    """Settings every profile inherits.

    Attributes
    ----------
    API_BASE_PREFIX: str
        Mount point of the versioned API blueprints.
    SECRET_KEY: str
        Flask secret; the default is only fit for local use.
    SQLALCHEMY_DATABASE_URI: str
        Taken from ``DATABASE_URL``.
    JWT_SIGNING_KEY_ID: str
        Key id (``kid`` header) of the active signing key.
    JWT_PRIVATE_KEY / JWT_PUBLIC_KEY: str
        PEM text (or ``@/path/to/file.pem``) of the active key pair. The
        public half is derived from the private key when blank.
    JWT_TRUSTED_PUBLIC_KEYS: dict[str, str]
        Historical verification keys, ``kid -> PEM``. Read from a JSON object
        in the environment.
    JWT_ACCESS_TOKEN_EXPIRES / JWT_REFRESH_TOKEN_EXPIRES: timedelta
        Independent lifetimes for access and refresh tokens.
    JWT_ENCODE_ISSUER / JWT_DECODE_ISSUER, JWT_ENCODE_AUDIENCE / JWT_DECODE_AUDIENCE:
        Issuer and audience stamped on and required from every token.
    ENCRYPTION_KEY: str
        Secret used to decrypt custodial private keys.
    RPC_URL: str
        JSON-RPC endpoint of the EVM node.
    TOKEN_CONTRACT_ADDRESS: str
        ERC-20 contract moved by transfers.
    RPC_REQUEST_TIMEOUT / RPC_MAX_ATTEMPTS / RPC_SLOT_INTERVAL:
        Resilient transport tuning.
    TRANSFER_LEASE_SECONDS: int
        Lifetime of a transfer reservation lease before another retry may
        take it over. Must exceed the worst-case broadcast time derived from
        the RPC settings; :func:`custody.factory.check_transfer_lease` enforces it.
    RETRY_AFTER_SECONDS: int
        ``Retry-After`` hint sent with ``transport_retryable`` responses.
    LOG_LEVEL: str
        Root logger level.
    """

    API_BASE_PREFIX = "/api"

    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-secret")

    # Persistence
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///./custody.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = False

    # Session tokens
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "RS256")
    JWT_DECODE_ALGORITHMS = [JWT_ALGORITHM]
    JWT_SIGNING_KEY_ID = os.getenv("JWT_SIGNING_KEY_ID", "primary")
    JWT_PRIVATE_KEY = os.getenv("JWT_PRIVATE_KEY", "")
    JWT_PUBLIC_KEY = os.getenv("JWT_PUBLIC_KEY", "")
    JWT_TRUSTED_PUBLIC_KEYS = env_json_mapping("JWT_TRUSTED_PUBLIC_KEYS")
    JWT_ACCESS_TOKEN_EXPIRES = env_duration("JWT_EXPIRES_IN", "15m")
    JWT_REFRESH_TOKEN_EXPIRES = env_duration("JWT_REFRESH_EXPIRES_IN", "7d")
    JWT_ENCODE_ISSUER = os.getenv("JWT_ISSUER", "custody-api")
    JWT_DECODE_ISSUER = JWT_ENCODE_ISSUER
    JWT_ENCODE_AUDIENCE = os.getenv("JWT_AUDIENCE", "custody-clients")
    JWT_DECODE_AUDIENCE = JWT_ENCODE_AUDIENCE
    JWT_IDENTITY_CLAIM = "sub"

    # Custodial keys
    ENCRYPTION_KEY = os.getenv("ENCRYPTION_KEY", "")

    # Chain access
    RPC_URL = os.getenv("RPC_URL", "http://127.0.0.1:8545")
    TOKEN_CONTRACT_ADDRESS = os.getenv(
        "TOKEN_CONTRACT_ADDRESS", "0x0000000000000000000000000000000000000000"
    )
    RPC_REQUEST_TIMEOUT = env_float("RPC_REQUEST_TIMEOUT", 10.0)
    RPC_MAX_ATTEMPTS = env_int("RPC_MAX_ATTEMPTS", 4)
    RPC_SLOT_INTERVAL = env_float("RPC_SLOT_INTERVAL", 0.25)

    # Transfers
    TRANSFER_LEASE_SECONDS = env_int("TRANSFER_LEASE_SECONDS", 300)
    RETRY_AFTER_SECONDS = env_int("RETRY_AFTER_SECONDS", 5)

    JSON_SORT_KEYS = False
    PROPAGATE_EXCEPTIONS = False
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    DEBUG = False
    TESTING = False


class DevelopmentConfig(BaseConfig):
    """Local runs: debug on unless ``FLASK_DEBUG`` says otherwise."""

    DEBUG = env_bool("FLASK_DEBUG", True)
    SQLALCHEMY_ECHO = env_bool("SQLALCHEMY_ECHO")


class TestingConfig(BaseConfig):
    """
    Test runs.

    ``TEST_DATABASE_URL`` overrides the in-memory SQLite default, and
    exceptions propagate to pytest instead of becoming 500 responses.
    """

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    PROPAGATE_EXCEPTIONS = True


class ProductionConfig(BaseConfig):
    """Deployed runs; log verbosity is left to the WSGI server config."""


CONFIG_MAP: Mapping[str, type[BaseConfig]] = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}


def get_config() -> type[BaseConfig]:
    """
    Resolve the settings class named by ``APP_ENV``.

    Unknown or missing names resolve to :class:`DevelopmentConfig`.

    :rtype: type[BaseConfig]
    """
    profile = os.getenv(ENV_VAR, "development").strip().lower()
    return CONFIG_MAP.get(profile, DevelopmentConfig)
