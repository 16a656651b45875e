"""Authentication-related Marshmallow schemas."""

from __future__ import annotations

import re

from marshmallow import Schema, ValidationError, fields, validate, validates_schema

PASSWORD_RULES = (
    (r"[A-Z]", "Password must contain an uppercase letter"),
    (r"[a-z]", "Password must contain a lowercase letter"),
    (r"[0-9]", "Password must contain a number"),
    (r"[^A-Za-z0-9]", "Password must contain at least one special character"),
)


def _password_policy(value: str) -> None:
    errors = [message for pattern, message in PASSWORD_RULES if not re.search(pattern, value)]
    if errors:
        raise ValidationError(errors)


class SignUpSchema(Schema):
    """Input payload for account registration."""

    email = fields.Email(required=True, validate=validate.Length(max=254))
    password = fields.String(
        required=True,
        validate=[validate.Length(min=12, max=64), _password_policy],
    )
    password_confirmation = fields.String(required=True)
    display_name = fields.String(load_default=None, validate=validate.Length(min=2, max=64))

    @validates_schema
    def _passwords_match(self, data, **kwargs):
        if data.get("password") != data.get("password_confirmation"):
            raise ValidationError("Passwords do not match", field_name="password_confirmation")


class SignInSchema(Schema):
    """Input payload for authenticating a user."""

    email = fields.Email(required=True, validate=validate.Length(max=254))
    password = fields.String(required=True, validate=validate.Length(min=1, max=128))


class RefreshSchema(Schema):
    """Input payload for exchanging a refresh token."""

    refresh_token = fields.String(required=True, validate=validate.Length(min=1))


class SessionSchema(Schema):
    """Response payload with a session token pair."""

    user_id = fields.Integer(required=True)
    access_token = fields.String(required=True)
    refresh_token = fields.String(required=True)
    refresh_expires_at = fields.DateTime(required=True)
    wallet_address = fields.String(allow_none=True)
    token_type = fields.Constant("bearer")
