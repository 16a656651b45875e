# tests/unit/infra/test_token_provider.py
from __future__ import annotations

import time

import jwt as pyjwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.utils import base64url_encode

from custody.services._shared.ports.token_provider import ACCESS_TOKEN_TYPE, REFRESH_TOKEN_TYPE
from tests.helpers.constants import HISTORICAL_KEY_ID, SIGNING_KEY_ID


def _forge(
    private_key, *, kid: str | None = SIGNING_KEY_ID, algorithm: str = "RS256", **overrides
) -> str:
    """Sign arbitrary claims the way the issuer would, then apply overrides."""
    now = int(time.time())
    claims = {
        "sub": "42",
        "type": ACCESS_TOKEN_TYPE,
        "iss": "custody-api",
        "aud": "custody-clients",
        "iat": now,
        "nbf": now,
        "exp": now + 600,
        "jti": "forged-jti",
    }
    claims.update(overrides)
    claims = {k: v for k, v in claims.items() if v is not None}
    headers = {"kid": kid} if kid else None
    return pyjwt.encode(claims, private_key, algorithm=algorithm, headers=headers)


def test_issue_tokens_round_trip(token_provider):
    issued = token_provider.issue_tokens(42)

    access = token_provider.verify_access_token(issued.access_token)
    refresh = token_provider.verify_refresh_token(issued.refresh_token)

    assert access is not None and refresh is not None
    assert access.subject == refresh.subject == "42"
    assert access.token_type == ACCESS_TOKEN_TYPE
    assert refresh.token_type == REFRESH_TOKEN_TYPE
    assert access.issuer == "custody-api"
    assert access.audience == "custody-clients"
    assert access.key_id == refresh.key_id == SIGNING_KEY_ID
    assert access.jwt_id is None
    assert refresh.jwt_id == issued.refresh_claims.jwt_id
    assert access.expires_at < refresh.expires_at


def test_refresh_jti_is_fresh_per_issue(token_provider):
    first = token_provider.issue_tokens(1)
    second = token_provider.issue_tokens(1)
    assert first.refresh_claims.jwt_id != second.refresh_claims.jwt_id
    assert first.refresh_token != second.refresh_token


def test_header_carries_active_kid(token_provider):
    issued = token_provider.issue_tokens(7)
    assert pyjwt.get_unverified_header(issued.access_token)["kid"] == SIGNING_KEY_ID
    assert pyjwt.get_unverified_header(issued.refresh_token)["kid"] == SIGNING_KEY_ID


def test_types_are_not_interchangeable(token_provider):
    issued = token_provider.issue_tokens(42)
    assert token_provider.verify_access_token(issued.refresh_token) is None
    assert token_provider.verify_refresh_token(issued.access_token) is None


def test_rejects_wrong_issuer(token_provider, signing_keys):
    token = _forge(signing_keys[SIGNING_KEY_ID], iss="someone-else")
    assert token_provider.verify_access_token(token) is None


def test_rejects_wrong_audience(token_provider, signing_keys):
    token = _forge(signing_keys[SIGNING_KEY_ID], aud="other-clients")
    assert token_provider.verify_access_token(token) is None


def test_rejects_missing_kid(token_provider, signing_keys):
    token = _forge(signing_keys[SIGNING_KEY_ID], kid=None)
    assert token_provider.verify_access_token(token) is None


def test_rejects_untrusted_kid(token_provider):
    rogue = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    token = _forge(rogue, kid="rogue")
    assert token_provider.verify_access_token(token) is None


def test_rejects_trusted_kid_with_foreign_signature(token_provider):
    rogue = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    token = _forge(rogue, kid=SIGNING_KEY_ID)
    assert token_provider.verify_access_token(token) is None


@pytest.mark.parametrize(
    ("algorithm", "key"),
    [
        ("RS512", "signing"),
        ("HS256", "a-shared-secret-long-enough-for-hmac"),
        ("none", None),
    ],
)
def test_rejects_algorithm_outside_allowlist(token_provider, signing_keys, algorithm, key):
    if key == "signing":
        key = signing_keys[SIGNING_KEY_ID]
    token = _forge(key, algorithm=algorithm)
    assert pyjwt.get_unverified_header(token)["alg"] == algorithm
    assert token_provider.verify_access_token(token) is None
    assert token_provider.verify_refresh_token(token, allow_expired=True) is None


def test_accepts_historical_key(token_provider, signing_keys):
    token = _forge(signing_keys[HISTORICAL_KEY_ID], kid=HISTORICAL_KEY_ID)
    claims = token_provider.verify_access_token(token)
    assert claims is not None
    assert claims.key_id == HISTORICAL_KEY_ID


def test_rejects_tampered_payload(token_provider):
    issued = token_provider.issue_tokens(42)
    header, payload, signature = issued.access_token.split(".")
    forged_payload = base64url_encode(b'{"sub":"1"}').decode()
    assert token_provider.verify_access_token(f"{header}.{forged_payload}.{signature}") is None


def test_expired_tokens(token_provider, signing_keys):
    past = int(time.time()) - 3600
    access = _forge(signing_keys[SIGNING_KEY_ID], iat=past - 60, nbf=past - 60, exp=past)
    refresh = _forge(
        signing_keys[SIGNING_KEY_ID],
        type=REFRESH_TOKEN_TYPE,
        iat=past - 60,
        nbf=past - 60,
        exp=past,
    )

    assert token_provider.verify_access_token(access) is None
    assert token_provider.verify_refresh_token(refresh) is None
    relaxed = token_provider.verify_refresh_token(refresh, allow_expired=True)
    assert relaxed is not None
    assert relaxed.jwt_id == "forged-jti"


def test_refresh_without_jti_is_rejected(token_provider, signing_keys):
    token = _forge(signing_keys[SIGNING_KEY_ID], type=REFRESH_TOKEN_TYPE, jti=None)
    assert token_provider.verify_refresh_token(token) is None


@pytest.mark.parametrize("garbage", ["", "not-a-jwt", "a.b.c"])
def test_garbage_is_rejected(token_provider, garbage):
    assert token_provider.verify_access_token(garbage) is None
    assert token_provider.verify_refresh_token(garbage) is None
