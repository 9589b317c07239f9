"""Unit tests for partner API key exchange and bearer token verification."""
import time

import jwt
import pytest

from launchpad.db.connection import get_connection
from launchpad.errors import ErrorKind, ServiceError
from launchpad.repositories.federation_repository import FederationRepository
from launchpad.repositories.submission_repository import ProfileRepository
from launchpad.services.auth_service import PARTNER_TOKEN, USER_TOKEN, AuthService

SECRET = "unit-test-signing-secret-0123456789abcdef"


@pytest.fixture
def auth(db_path):
    return AuthService(FederationRepository(db_path), ProfileRepository(db_path), secret=SECRET)


@pytest.mark.parametrize(
    "api_key,kind,message",
    [
        (None, ErrorKind.VALIDATION_ERROR, "API key is required"),
        ("", ErrorKind.VALIDATION_ERROR, "API key is required"),
        ("sk_live_123", ErrorKind.VALIDATION_ERROR, "Invalid API key format"),
        ("fed_key_unknown", ErrorKind.UNAUTHORIZED, "Invalid API key"),
    ],
)
def test_exchange_rejects_bad_keys(auth, api_key, kind, message):
    with pytest.raises(ServiceError) as exc_info:
        auth.exchange_api_key(api_key)
    assert exc_info.value.kind == kind
    assert exc_info.value.message == message


def test_exchange_issues_partner_token(auth, make_partner, db_path):
    make_partner("p1", api_key="fed_key_valid123", tier="premium")

    exchange = auth.exchange_api_key("fed_key_valid123")

    assert exchange.expires_in == 3600
    assert exchange.partner_info["id"] == "p1"
    assert "api_key" not in exchange.partner_info
    claims = jwt.decode(exchange.token, SECRET, algorithms=["HS256"])
    assert claims["type"] == PARTNER_TOKEN
    assert claims["partner_id"] == "p1"
    assert claims["tier"] == "premium"
    assert claims["exp"] - claims["iat"] == 3600
    assert FederationRepository(db_path).get_partner("p1").last_active is not None


def test_exchange_rejects_suspended_partner(auth, make_partner):
    make_partner("p1", api_key="fed_key_valid123", status="suspended")
    with pytest.raises(ServiceError) as exc_info:
        auth.exchange_api_key("fed_key_valid123")
    assert exc_info.value.kind == ErrorKind.UNAUTHORIZED


def test_verify_partner_token(auth, make_partner):
    make_partner("p1", tier="enterprise")
    token = auth.exchange_api_key("fed_key_valid123").token

    context = auth.verify_bearer(token)

    assert context.type == PARTNER_TOKEN
    assert context.tier == "enterprise"
    assert context.rate_limit_key == "partner:p1"


def test_partner_token_rejected_after_suspension(auth, make_partner, db_path):
    make_partner("p1")
    token = auth.exchange_api_key("fed_key_valid123").token

    with get_connection(db_path) as conn:
        conn.execute("UPDATE federation_partners SET status = 'suspended' WHERE id = 'p1'")

    with pytest.raises(ServiceError) as exc_info:
        auth.verify_bearer(token)
    assert exc_info.value.message == "Invalid partner token"


def test_verify_user_token(auth, make_profile):
    make_profile("u1", is_admin=True)

    context = auth.verify_bearer(auth.issue_user_token("u1"))

    assert context.type == USER_TOKEN
    assert context.tier == "basic"
    assert context.identity == {"id": "u1", "username": "u1", "is_admin": True}
    assert context.rate_limit_key == "user:u1"


def test_user_token_for_missing_profile(auth):
    with pytest.raises(ServiceError) as exc_info:
        auth.verify_bearer(auth.issue_user_token("ghost"))
    assert exc_info.value.message == "Invalid user token"


@pytest.mark.parametrize(
    "token",
    [
        "not-a-jwt",
        jwt.encode({"type": "user", "sub": "u1"}, "other-secret", algorithm="HS256"),
        jwt.encode({"type": "user", "sub": "u1", "exp": int(time.time()) - 10}, SECRET, algorithm="HS256"),
        jwt.encode({"type": "robot", "sub": "u1"}, SECRET, algorithm="HS256"),
    ],
)
def test_verify_rejects_bad_tokens(auth, make_profile, token):
    make_profile("u1")
    with pytest.raises(ServiceError) as exc_info:
        auth.verify_bearer(token)
    assert exc_info.value.kind == ErrorKind.UNAUTHORIZED
    assert exc_info.value.message == "Invalid token"


def test_verify_api_key(auth, make_partner):
    make_partner("p1", api_key="fed_key_abc")
    assert auth.verify_api_key("fed_key_abc").subject_id == "p1"
    with pytest.raises(ServiceError):
        auth.verify_api_key("fed_key_nope")
