# custody/services/auth/dto.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

# ---------------------------- Input DTOs ---------------------------------- #


@dataclass(frozen=True, slots=True)
class SignUpIn:
    """
    Input DTO for account registration.

    :param email: User email.
    :type email: str
    :param password: Raw password (policy checked at the API layer).
    :type password: str
    :param display_name: Optional display name.
    :type display_name: str | None
    """

    email: str
    password: str
    display_name: str | None = None


@dataclass(frozen=True, slots=True)
class SignInIn:
    """
    Input DTO for sign-in.

    :param email: User email (normalized by the repository lookup).
    :type email: str
    :param password: Raw password (to be verified).
    :type password: str
    """

    email: str
    password: str


@dataclass(frozen=True, slots=True)
class RefreshIn:
    """
    Input DTO for token refresh.

    :param refresh_token: Encoded refresh JWT.
    :type refresh_token: str
    """

    refresh_token: str


# --------------------------- Output DTOs ---------------------------------- #


@dataclass(frozen=True, slots=True)
class SessionOut:
    """
    Output DTO with a freshly issued token pair.

    :param user_id: Owner of the session.
    :type user_id: int
    :param access_token: Encoded access JWT.
    :type access_token: str
    :param refresh_token: Encoded refresh JWT.
    :type refresh_token: str
    :param refresh_expires_at: Expiry of ``refresh_token`` (UTC).
    :type refresh_expires_at: datetime
    :param wallet_address: Address of the wallet created at sign-up.
    :type wallet_address: str | None
    """

    user_id: int
    access_token: str
    refresh_token: str
    refresh_expires_at: datetime
    wallet_address: str | None = None
