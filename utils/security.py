"""
security helpers:
- Argon2 password hashing via argon2-cffi
- JWT creation/verification via PyJWT
- SHA-256 fingerprints and opaque refresh token generation
"""
from __future__ import annotations

import hashlib
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError

from utils.exceptions import ConfigurationError, InvalidToken, TokenExpired

DEFAULT_ACCESS_TTL_MS = 30 * 60 * 1000
DEFAULT_REFRESH_TTL_MS = 7 * 24 * 60 * 60 * 1000


def build_password_hasher(time_cost: int = 3, memory_cost: int = 65536, parallelism: int = 4) -> PasswordHasher:
    """Build the Argon2 hasher once at startup; bad cost factors fail here, not per request."""
    for name, value in (("time_cost", time_cost), ("memory_cost", memory_cost), ("parallelism", parallelism)):
        if not isinstance(value, int) or isinstance(value, bool) or value < 1:
            raise ConfigurationError(f"argon2 {name} must be a positive integer, got {value!r}")
    if memory_cost < 8 * parallelism:
        raise ConfigurationError("argon2 memory_cost must be at least 8 * parallelism")
    return PasswordHasher(time_cost=time_cost, memory_cost=memory_cost, parallelism=parallelism)


def hash_password(hasher: PasswordHasher, password: str) -> str:
    """Hash a plaintext password using Argon2
    """
    return hasher.hash(password)


def verify_password(hasher: PasswordHasher, password: str, password_hash: Optional[str]) -> bool:
    """ Verify a plaintext password using argon2 (constant-time inside argon2)
    """
    if not password_hash:
        return False
    try:
        return hasher.verify(password_hash, password)
    except (VerifyMismatchError, VerificationError, InvalidHash):
        return False


def needs_rehash(hasher: PasswordHasher, password_hash: str) -> bool:
    try:
        return hasher.check_needs_rehash(password_hash)
    except InvalidHash:
        return False


def hash_value(value: Optional[str]) -> Optional[str]:
    """SHA-256 hex digest, or None for empty input."""
    if not value:
        return None
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def generate_refresh_token() -> str:
    """48 random bytes, URL-safe base64 without padding."""
    return secrets.token_urlsafe(48)


def generate_jti() -> str:
    """Generate a unique JTI (JWT ID).
    """
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TokenSigner:
    """
    Signs and verifies access tokens with the process-wide secret.

    The secret is read once at construction and never mutated. A signer built
    without a secret is allowed to exist so the app can boot in development,
    but every sign/verify call then raises ConfigurationError.
    """

    def __init__(self, secret: Optional[str], algorithm: str = "HS256", issuer: str = "voice-bff"):
        self._secret = secret
        self.algorithm = algorithm
        self.issuer = issuer

    def __repr__(self) -> str:
        return f"<TokenSigner algorithm={self.algorithm} issuer={self.issuer}>"

    def _require_secret(self) -> str:
        if not self._secret:
            raise ConfigurationError("JWT_SECRET is not configured")
        return self._secret

    def _sign(self, claims: Dict[str, Any], ttl_ms: int, token_type: str) -> str:
        secret = self._require_secret()
        now = _now()
        payload = dict(claims)
        payload.update(
            {
                "iss": self.issuer,
                "iat": int(now.timestamp()),
                "exp": int((now + timedelta(milliseconds=ttl_ms)).timestamp()),
                "jti": generate_jti(),
                "type": token_type,
            }
        )
        return jwt.encode(payload, secret, algorithm=self.algorithm)

    def sign_access(self, claims: Dict[str, Any], ttl_ms: int = DEFAULT_ACCESS_TTL_MS) -> str:
        return self._sign(claims, ttl_ms, "access")

    def sign_refresh(self, claims: Dict[str, Any], ttl_ms: int = DEFAULT_REFRESH_TTL_MS) -> str:
        """Signed refresh JWT. Not used by the session flow, which issues opaque refresh tokens."""
        return self._sign(claims, ttl_ms, "refresh")

    def verify_token(self, token: str, expected_type: Optional[str] = None) -> Dict[str, Any]:
        """
        Decode and validate a JWT. Raises TokenExpired or InvalidToken so callers
        can tell clients whether a refresh is worth attempting.
        """
        secret = self._require_secret()
        try:
            decoded = jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                options={"require": ["exp", "iat", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpired()
        except jwt.InvalidTokenError:
            raise InvalidToken()

        if expected_type and decoded.get("type") != expected_type:
            raise InvalidToken("Wrong token type")
        return decoded
