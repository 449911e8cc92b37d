from datetime import timedelta

import jwt
import pytest

from errors import AuthError, AuthFailure
from security import TokenService, get_token_service, hash_password, verify_password
from services import auth

SECRET = "another-test-secret-0123456789-abcdefghij"


def test_password_hash_round_trip():
    password_hash = hash_password("hunter2")

    assert verify_password("hunter2", password_hash)
    assert not verify_password("hunter3", password_hash)


def test_verify_password_rejects_non_bcrypt_hash():
    assert not verify_password("hunter2", "plain-text")
    assert not verify_password("hunter2", None)


def test_token_claims_round_trip():
    tokens = TokenService(SECRET, timedelta(hours=1))

    claims = tokens.decode(tokens.issue(7, "alice", "ADMIN"))

    assert claims.subject == "alice"
    assert claims.user_id == 7
    assert claims.role == "ADMIN"
    assert claims.expires_at - claims.issued_at == timedelta(hours=1)


def test_token_role_is_carried_verbatim():
    tokens = TokenService(SECRET, timedelta(hours=1))

    assert tokens.decode(tokens.issue(None, "svc", "auditor")).role == "auditor"


def test_short_secret_is_rejected():
    with pytest.raises(ValueError):
        TokenService("too-short", timedelta(hours=1))


def test_expired_token_is_invalid():
    tokens = TokenService(SECRET, timedelta(seconds=-5))

    token = tokens.issue(1, "alice", "USER")

    with pytest.raises(jwt.ExpiredSignatureError):
        tokens.decode(token)
    assert tokens.validate(token) is None


def test_token_from_other_secret_is_invalid():
    foreign = TokenService("x" * 40, timedelta(hours=1)).issue(1, "alice", "USER")

    assert TokenService(SECRET, timedelta(hours=1)).validate(foreign) is None
    assert TokenService(SECRET, timedelta(hours=1)).validate("not-a-jwt") is None


async def test_authenticate_unknown_username(db):
    with pytest.raises(AuthError) as exc_info:
        await auth.authenticate(db, "missing", "whatever")

    assert exc_info.value.reason == AuthFailure.INVALID_USERNAME
    assert exc_info.value.message == "Invalid username"


async def test_authenticate_wrong_password(db, make_user):
    await make_user("alice", password="right")

    with pytest.raises(AuthError) as exc_info:
        await auth.authenticate(db, "alice", "wrong")

    assert exc_info.value.reason == AuthFailure.INVALID_PASSWORD
    assert exc_info.value.message == "Invalid password"


async def test_login_issues_token_for_user(db, make_user):
    user = await make_user("root", role="ADMIN", password="pw")
    tokens = get_token_service()

    token = await auth.login(db, tokens, "root", "pw")

    claims = tokens.decode(token)
    assert claims.subject == "root"
    assert claims.user_id == user.id
    assert claims.role == "ADMIN"
