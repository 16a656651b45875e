"""Health check endpoint."""

from __future__ import annotations

from flask import Blueprint, current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from custody.api.deps import json_response, timing
from custody.core.extensions import db, get_key_registry

bp = Blueprint("health", __name__)


@bp.get("/health")
@timing
def healthcheck():
    """Return application, database and signing-key health."""
    db_status = "ok"
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError:
        current_app.logger.exception("healthcheck.db_error")
        db_status = "fail"
    registry = get_key_registry()
    payload = {
        "status": "ok",
        "db": db_status,
        "signing_key_id": registry.signing_key.key_id,
        "trusted_key_ids": registry.trusted_key_ids,
        "version": current_app.config.get("APP_VERSION", "dev"),
    }
    return json_response(payload)
