"""User lookups."""

from __future__ import annotations

from custody.models.user import User
from custody.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """Persistence-only repository for :class:`User`; never touches tokens."""

    model = User

    def get_by_email(self, email: str) -> User | None:
        """Fetch a user by email, normalized the same way the model stores it."""
        return self.find_one(email=email.strip().lower())

    def authenticate(self, email: str, password: str) -> User | None:
        """Return the user when ``password`` matches, otherwise ``None``.

        Unknown email and wrong password are indistinguishable to the caller.
        """
        user = self.get_by_email(email)
        if user is None or not user.verify_password(password):
            return None
        return user
