"""Factory Boy definition for :class:`custody.models.user.User`."""

from __future__ import annotations

import factory

from custody.models.user import User
from tests.factories import BaseFactory

DEFAULT_PASSWORD = "Sup3r-secret-pass"


class UserFactory(BaseFactory):
    """Build persisted users; the password goes through the hashing setter."""

    class Meta:
        model = User

    id = None
    email = factory.Sequence(lambda n: f"user{n}@example.com")
    display_name = factory.Faker("name")
    password_hash = factory.LazyFunction(lambda: "")

    @factory.post_generation
    def password(obj, create, extracted, **kwargs):
        obj.password = extracted or DEFAULT_PASSWORD
