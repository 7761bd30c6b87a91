from datetime import timedelta

import pytest
from jose import jwt

from farmauth.config import settings
from farmauth.core.exceptions import TokenExpiredError, TokenInvalidError, TokenMalformedError
from farmauth.core.security import (
    ACCESS_TOKEN_TYPE,
    REFRESH_TOKEN_TYPE,
    create_access_token,
    create_refresh_token,
    get_password_hash,
    hash_token,
    to_timestamp,
    tokens_match,
    utcnow,
    verify_password,
    verify_token,
)


def _access(now=None, **claims):
    data = {"sub": "user-1", "email": "a@example.com", "sid": "fam-1", "ver": 1}
    data.update(claims)
    return create_access_token(data, now=now)


def test_access_token_rejects_refresh_typ():
    refresh = create_refresh_token({"sub": "1"}, family_id="family-1")
    with pytest.raises(TokenInvalidError):
        verify_token(refresh, ACCESS_TOKEN_TYPE)


def test_access_token_round_trip():
    payload = verify_token(_access(), ACCESS_TOKEN_TYPE)
    assert payload["sub"] == "user-1"
    assert payload["typ"] == "access"
    assert payload["sid"] == "fam-1"
    assert payload["exp"] - payload["iat"] == settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60


def test_refresh_token_contains_family():
    token = create_refresh_token({"sub": "9"}, family_id="fam-xyz")
    payload = verify_token(token, REFRESH_TOKEN_TYPE)
    assert payload["typ"] == "refresh"
    assert payload["fam"] == "fam-xyz"


def test_every_token_gets_a_distinct_jti():
    first = verify_token(_access(), ACCESS_TOKEN_TYPE)
    second = verify_token(_access(), ACCESS_TOKEN_TYPE)
    assert first["jti"] != second["jti"]


def test_expiry_is_exclusive():
    issued = utcnow().replace(microsecond=0)
    token = _access(now=issued)
    exp = verify_token(token, ACCESS_TOKEN_TYPE, now=issued)["exp"]
    assert exp == to_timestamp(issued) + settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60

    last_valid_second = issued + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES, seconds=-1)
    verify_token(token, ACCESS_TOKEN_TYPE, now=last_valid_second)

    with pytest.raises(TokenExpiredError):
        verify_token(token, ACCESS_TOKEN_TYPE, now=issued + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))


@pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b.c"])
def test_garbage_is_malformed(token):
    with pytest.raises(TokenMalformedError):
        verify_token(token, ACCESS_TOKEN_TYPE)


def test_foreign_signature_is_invalid():
    claims = verify_token(_access(), ACCESS_TOKEN_TYPE)
    forged = jwt.encode(claims, "some-other-secret-key", algorithm=settings.ALGORITHM)
    with pytest.raises(TokenInvalidError):
        verify_token(forged, ACCESS_TOKEN_TYPE)


def test_missing_session_claim_is_malformed():
    now = to_timestamp(utcnow())
    token = jwt.encode(
        {"sub": "user-1", "jti": "x", "iat": now, "exp": now + 60, "typ": "access"},
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
    )
    with pytest.raises(TokenMalformedError):
        verify_token(token, ACCESS_TOKEN_TYPE)


def test_password_hash_round_trip():
    hashed = get_password_hash("Harvest#2024")
    assert hashed != "Harvest#2024"
    assert verify_password("Harvest#2024", hashed)
    assert not verify_password("harvest#2024", hashed)


def test_verify_password_against_corrupt_hash_is_false():
    assert verify_password("anything", "not-a-bcrypt-hash") is False


def test_verify_password_refuses_input_past_bcrypt_limit():
    password = "Aa1!" + "x" * 68
    hashed = get_password_hash(password)
    assert verify_password(password, hashed)
    # bcrypt 4.x would compare only the first 72 bytes
    assert verify_password(password + "y", hashed) is False


def test_tokens_match_compares_against_digest():
    stored = hash_token("csrf-value")
    assert tokens_match("csrf-value", stored)
    assert not tokens_match("csrf-valuf", stored)
