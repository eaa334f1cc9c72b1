"""Security module tests."""

import pytest

from app.core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    generate_reset_token,
    hash_password,
    hash_token,
    verify_password,
)


def test_hash_password():
    """Test password hashing."""
    hashed = hash_password("mypassword")
    assert hashed != "mypassword"
    assert hashed.startswith("$2b$")


def test_verify_password_correct():
    """Test verifying correct password."""
    hashed = hash_password("mypassword")
    assert verify_password("mypassword", hashed) is True


def test_verify_password_incorrect():
    """Test verifying incorrect password."""
    hashed = hash_password("mypassword")
    assert verify_password("wrongpassword", hashed) is False


def test_create_access_token():
    """Test access token creation."""
    token = create_access_token(subject="user-123")
    assert isinstance(token, str)
    assert len(token) > 0


def test_decode_access_token():
    """Test decoding access token."""
    token = create_access_token(subject="user-123")
    payload = decode_token(token)
    assert payload is not None
    assert payload["sub"] == "user-123"
    assert payload["type"] == "access"


def test_create_refresh_token():
    """Test refresh token creation."""
    token = create_refresh_token(subject="user-123")
    assert isinstance(token, str)
    payload = decode_token(token)
    assert payload is not None
    assert payload["sub"] == "user-123"
    assert payload["type"] == "refresh"


def test_decode_invalid_token():
    """Test decoding an invalid token."""
    payload = decode_token("invalid.token.here")
    assert payload is None


def test_password_hash_uniqueness():
    """Test that same password gets different hashes (salted)."""
    hash1 = hash_password("samepassword")
    hash2 = hash_password("samepassword")
    assert hash1 != hash2
    assert verify_password("samepassword", hash1)
    assert verify_password("samepassword", hash2)


def test_refresh_tokens_are_distinct():
    """Two refresh tokens for the same subject in the same second still differ."""
    assert create_refresh_token(subject="user-123") != create_refresh_token(subject="user-123")


def test_hash_token_is_stable_sha256():
    assert hash_token("abc") == hash_token("abc")
    assert len(hash_token("abc")) == 64
    assert hash_token("abc") != hash_token("abd")


def test_reset_tokens_are_random_hex():
    token = generate_reset_token()
    assert len(token) == 64
    int(token, 16)
    assert generate_reset_token() != token


def test_verify_password_without_hash():
    """Unknown accounts still pay for a bcrypt check and never verify."""
    assert verify_password("anything", None) is False
