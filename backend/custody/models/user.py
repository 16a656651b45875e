"""User model: the account that owns sessions and a custodial wallet."""

from __future__ import annotations

from typing import NoReturn

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, validates
from werkzeug.security import check_password_hash, generate_password_hash

from custody.core.extensions import db

from .base import PKMixin, ReprMixin, TimestampMixin


class User(PKMixin, ReprMixin, TimestampMixin, db.Model):
    """
    Account holder.

    Fields
    ------
    email : str
        Login identifier, stored trimmed and lowercased; unique.
    password_hash : str
        Werkzeug hash. Assign plain text through ``user.password``.
    display_name : str | None
        Optional name chosen at sign-up.
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(254), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(254), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    __table_args__ = (UniqueConstraint("email", name="uq_users_email"),)

    @property
    def password(self) -> NoReturn:
        raise AttributeError("Password is write-only.")

    @password.setter
    def password(self, raw: str) -> None:
        if not isinstance(raw, str) or not raw:
            raise ValueError("Password must be a non-empty string.")
        self.password_hash = generate_password_hash(raw)

    def verify_password(self, raw: str) -> bool:
        """Return ``True`` when ``raw`` matches the stored hash."""
        return bool(self.password_hash) and check_password_hash(self.password_hash, raw)

    @validates("email")
    def _normalize_email(self, key: str, value: str) -> str:
        """
        Trim and lowercase the email.

        :raises ValueError: If it is empty or lacks ``@`` and a dotted domain.
        """
        if not isinstance(value, str) or not value.strip():
            raise ValueError("Email is required.")
        normalized = value.strip().lower()
        local, _, domain = normalized.rpartition("@")
        if not local or "." not in domain:
            raise ValueError("Email format looks invalid.")
        return normalized
