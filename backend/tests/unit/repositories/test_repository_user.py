"""Unit tests for UserRepository."""

import pytest

from custody.repositories.user import UserRepository
from tests.factories.user import UserFactory


class TestUserRepository:
    """Ensure ``UserRepository`` performs core persistence operations."""

    @pytest.fixture()
    def repo(self):
        return UserRepository()

    def test_create_and_get_user(self, repo, session):
        """Create a user and fetch it by email to verify retrieval."""
        u = UserFactory(email="alice@example.com", display_name="Alice")
        session.commit()

        fetched = repo.get_by_email("  ALICE@example.com")
        assert fetched is not None
        assert fetched.id == u.id
        assert fetched.display_name == "Alice"

    def test_authenticate_valid_and_invalid(self, repo, session):
        """Authenticate with correct credentials and reject invalid attempts."""
        UserFactory(email="auth@example.com", password="strongpass")
        session.commit()

        assert repo.authenticate("auth@example.com", "strongpass") is not None
        assert repo.authenticate("auth@example.com", "wrongpass") is None
        assert repo.authenticate("nope@example.com", "strongpass") is None
