"""Unit tests for password hashing and token signing."""

import jwt
import pytest

from utils.exceptions import ConfigurationError, InvalidToken, TokenExpired
from utils.security import (
    TokenSigner,
    build_password_hasher,
    generate_refresh_token,
    hash_password,
    hash_value,
    needs_rehash,
    verify_password,
)

SECRET = "unit-test-secret-that-is-long-enough-0123456789"


@pytest.fixture(scope="module")
def hasher():
    return build_password_hasher(time_cost=1, memory_cost=1024, parallelism=1)


@pytest.fixture
def signer():
    return TokenSigner(SECRET, "HS256", "voice-bff")


class TestPasswordHasher:
    def test_verify_accepts_original_password(self, hasher):
        digest = hash_password(hasher, "Password123!")
        assert verify_password(hasher, "Password123!", digest) is True

    def test_verify_rejects_other_password(self, hasher):
        digest = hash_password(hasher, "Password123!")
        assert verify_password(hasher, "Password124!", digest) is False

    def test_digest_is_salted_and_not_plaintext(self, hasher):
        first = hash_password(hasher, "Password123!")
        second = hash_password(hasher, "Password123!")
        assert first != second
        assert "Password123!" not in first

    @pytest.mark.parametrize("digest", [None, "", "not-an-argon2-hash", "$argon2id$v=19$garbage"])
    def test_verify_never_raises_on_bad_digest(self, hasher, digest):
        assert verify_password(hasher, "Password123!", digest) is False

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"time_cost": 0},
            {"memory_cost": -1},
            {"parallelism": 0},
            {"time_cost": "3"},
            {"memory_cost": 8, "parallelism": 4},
        ],
    )
    def test_invalid_cost_fails_at_build_time(self, kwargs):
        with pytest.raises(ConfigurationError):
            build_password_hasher(**kwargs)

    def test_needs_rehash_after_cost_change(self, hasher):
        digest = hash_password(hasher, "Password123!")
        stronger = build_password_hasher(time_cost=2, memory_cost=1024, parallelism=1)
        assert needs_rehash(hasher, digest) is False
        assert needs_rehash(stronger, digest) is True


class TestTokenSigner:
    def test_access_token_round_trip(self, signer):
        token = signer.sign_access({"sub": "u1", "email": "a@x.com", "role": "admin", "sid": "s1"})
        claims = signer.verify_token(token, expected_type="access")
        assert claims["sub"] == "u1"
        assert claims["sid"] == "s1"
        assert claims["type"] == "access"
        assert claims["iss"] == "voice-bff"

    def test_ttl_sets_expiry(self, signer):
        token = signer.sign_access({"sub": "u1"}, ttl_ms=30 * 60 * 1000)
        claims = signer.verify_token(token)
        assert claims["exp"] - claims["iat"] == 30 * 60

    def test_expired_token_is_distinguished(self, signer):
        token = signer.sign_access({"sub": "u1"}, ttl_ms=-60_000)
        with pytest.raises(TokenExpired):
            signer.verify_token(token)

    def test_bad_signature_is_invalid(self, signer):
        token = TokenSigner("another-secret-of-sufficient-length-000000").sign_access({"sub": "u1"})
        with pytest.raises(InvalidToken):
            signer.verify_token(token)

    def test_garbage_is_invalid(self, signer):
        with pytest.raises(InvalidToken):
            signer.verify_token("not.a.jwt")

    def test_foreign_issuer_is_invalid(self, signer):
        token = TokenSigner(SECRET, issuer="someone-else").sign_access({"sub": "u1"})
        with pytest.raises(InvalidToken):
            signer.verify_token(token)

    def test_missing_subject_is_invalid(self, signer):
        token = jwt.encode({"iss": "voice-bff", "iat": 1, "exp": 9999999999}, SECRET, algorithm="HS256")
        with pytest.raises(InvalidToken):
            signer.verify_token(token)

    def test_refresh_jwt_is_not_an_access_token(self, signer):
        token = signer.sign_refresh({"sub": "u1"})
        assert signer.verify_token(token)["type"] == "refresh"
        with pytest.raises(InvalidToken):
            signer.verify_token(token, expected_type="access")

    @pytest.mark.parametrize("secret", [None, ""])
    def test_missing_secret_is_a_configuration_error(self, secret):
        bare = TokenSigner(secret)
        with pytest.raises(ConfigurationError):
            bare.sign_access({"sub": "u1"})
        with pytest.raises(ConfigurationError):
            bare.sign_refresh({"sub": "u1"})
        with pytest.raises(ConfigurationError):
            bare.verify_token("whatever")

    def test_repr_does_not_leak_secret(self, signer):
        assert SECRET not in repr(signer)


def test_hash_value():
    assert hash_value(None) is None
    assert hash_value("") is None
    assert hash_value("abc") == hash_value("abc")
    assert len(hash_value("abc")) == 64


def test_refresh_tokens_are_unique_and_url_safe():
    tokens = {generate_refresh_token() for _ in range(50)}
    assert len(tokens) == 50
    for token in tokens:
        assert len(token) == 64
        assert set(token) <= set("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_")
