"""Wallet-related Marshmallow schemas."""

from __future__ import annotations

from marshmallow import Schema, fields, validate

AMOUNT_PATTERN = r"^[0-9]+(\.[0-9]+)?$"
ADDRESS_PATTERN = r"^0x[a-fA-F0-9]{40}$"


class TransferSchema(Schema):
    """Input payload for a token transfer."""

    amount = fields.String(
        required=True,
        validate=[
            validate.Length(max=80),
            validate.Regexp(AMOUNT_PATTERN, error="Amount must be a positive number"),
        ],
    )
    destination_address = fields.String(
        required=True,
        validate=validate.Regexp(
            ADDRESS_PATTERN, error="Destination address must be a valid EVM address"
        ),
    )


class TransferResultSchema(Schema):
    """Response payload: ``completed`` with a hash, or ``pending``."""

    status = fields.String(required=True)
    transaction_hash = fields.String(allow_none=True)
