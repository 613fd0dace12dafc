from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from pontocarro.services.security import (
    InvalidTokenError,
    TokenService,
    generate_token_with_expiry,
    hash_password,
    hash_token,
    verify_password,
)


def test_password_hash_round_trip():
    hashed = hash_password("Abcdef1!", rounds=4)

    assert hashed != "Abcdef1!"
    assert verify_password("Abcdef1!", hashed)
    assert not verify_password("Abcdef1?", hashed)


def test_verify_password_with_garbage_hash():
    assert not verify_password("Abcdef1!", "not-a-bcrypt-hash")


def test_reset_token_is_stored_hashed():
    token, token_hash, expires_at = generate_token_with_expiry(60)

    assert token_hash == hash_token(token)
    assert token_hash != token
    assert expires_at > datetime.utcnow() + timedelta(minutes=59)


def test_access_and_refresh_tokens_are_not_interchangeable(settings):
    tokens = TokenService(settings)
    access = tokens.create_access_token(7)
    refresh = tokens.create_refresh_token(7)

    assert tokens.decode_access_token(access) == 7
    assert tokens.decode_refresh_token(refresh) == 7
    with pytest.raises(InvalidTokenError):
        tokens.decode_access_token(refresh)
    with pytest.raises(InvalidTokenError):
        tokens.decode_refresh_token(access)


def test_tokens_issued_together_differ(settings):
    tokens = TokenService(settings)

    assert tokens.create_refresh_token(1) != tokens.create_refresh_token(1)


def test_expired_token_is_invalid(settings):
    past = datetime.now(timezone.utc) - timedelta(hours=2)
    expired = jwt.encode(
        {"sub": "1", "type": "access", "iat": past, "exp": past + timedelta(minutes=1)},
        settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
    )

    with pytest.raises(InvalidTokenError):
        TokenService(settings).decode_access_token(expired)


def test_token_without_numeric_subject_is_invalid(settings):
    token = jwt.encode({"sub": "ana", "type": "access"}, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)

    with pytest.raises(InvalidTokenError):
        TokenService(settings).decode_access_token(token)
