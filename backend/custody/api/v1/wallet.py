"""Wallet endpoints."""

from __future__ import annotations

from flask import Blueprint, g, request

from custody.api.deps import build_transfer_service, json_response, require_access_token, timing
from custody.models.transfer_request import TransferStatus
from custody.schemas import TransferResultSchema, TransferSchema
from custody.services.wallet.dto import TransferIn

bp = Blueprint("wallet", __name__)

IDEMPOTENCY_HEADER = "Idempotency-Key"

transfer_schema = TransferSchema()
transfer_result_schema = TransferResultSchema()


@bp.post("/transfer")
@require_access_token
@timing
def transfer():
    """Transfer tokens from the caller's wallet.

    With an ``Idempotency-Key`` header, retries return the original hash
    (200) or ``pending`` (202) instead of broadcasting again.
    """
    data = transfer_schema.load(request.get_json(silent=True) or {})
    key = (request.headers.get(IDEMPOTENCY_HEADER) or "").strip() or None
    result = build_transfer_service().transfer(
        TransferIn(
            user_id=g.user_id,
            amount=data["amount"],
            destination_address=data["destination_address"],
            idempotency_key=key,
        )
    )
    status = 202 if result.status is TransferStatus.PENDING else 200
    return json_response({"data": transfer_result_schema.dump(result)}, status=status)
