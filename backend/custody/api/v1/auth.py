"""Authentication endpoints using the service layer."""

from __future__ import annotations

from flask import Blueprint, g, request

from custody.api.deps import build_auth_service, json_response, require_access_token, timing
from custody.schemas import RefreshSchema, SessionSchema, SignInSchema, SignUpSchema
from custody.services.auth.dto import RefreshIn, SignInIn, SignUpIn

bp = Blueprint("auth", __name__)

sign_up_schema = SignUpSchema()
sign_in_schema = SignInSchema()
refresh_schema = RefreshSchema()
session_schema = SessionSchema()


@bp.post("/sign-up")
@timing
def sign_up():
    """Register a user with a new custodial wallet and start a session."""
    data = sign_up_schema.load(request.get_json(silent=True) or {})
    session = build_auth_service().sign_up(
        SignUpIn(
            email=data["email"],
            password=data["password"],
            display_name=data.get("display_name"),
        )
    )
    return json_response({"data": session_schema.dump(session)}, status=201)


@bp.post("/sign-in")
@timing
def sign_in():
    """Authenticate credentials and issue a token pair."""
    data = sign_in_schema.load(request.get_json(silent=True) or {})
    session = build_auth_service().sign_in(SignInIn(email=data["email"], password=data["password"]))
    return json_response({"data": session_schema.dump(session)})


@bp.post("/refresh")
@timing
def refresh():
    """Exchange a refresh token for a new pair (single use)."""
    data = refresh_schema.load(request.get_json(silent=True) or {})
    session = build_auth_service().refresh_session(RefreshIn(refresh_token=data["refresh_token"]))
    return json_response({"data": session_schema.dump(session)})


@bp.post("/logout")
@require_access_token
@timing
def logout():
    """Revoke every active refresh token of the caller."""
    revoked = build_auth_service().revoke_sessions(g.user_id)
    return json_response({"data": {"revoked": revoked}})
