"""
Authentication error taxonomy.

Every AuthError carries the machine code, the client-facing message and the
HTTP status it maps to; api.errors turns them into the uniform envelope.
ConfigurationError is deliberately outside that tree: it is an operator
problem, logged and reported as a 500.
"""
from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Raised when required configuration (signing secret, hash cost...) is missing or invalid."""


class AuthError(Exception):
    code = "UNAUTHORIZED"
    message = "Unauthorized"
    status = 401

    def __init__(self, message: str | None = None):
        if message:
            self.message = message
        super().__init__(self.message)


class MissingCredential(AuthError):
    code = "MISSING_CREDENTIAL"
    message = "Missing token"


class InvalidToken(AuthError):
    code = "INVALID_TOKEN"
    message = "Invalid token"


class TokenExpired(AuthError):
    code = "TOKEN_EXPIRED"
    message = "Token expired"


class InvalidUser(AuthError):
    code = "INVALID_USER"
    message = "Invalid user"


class SessionExpired(AuthError):
    code = "SESSION_EXPIRED"
    message = "Session expired"


class SessionMismatch(AuthError):
    code = "SESSION_MISMATCH"
    message = "Session does not match this device"


class InvalidCredentials(AuthError):
    code = "INVALID_CREDENTIALS"
    message = "Invalid credentials"


class InvalidRefreshToken(AuthError):
    code = "INVALID_REFRESH_TOKEN"
    message = "Invalid refresh token"


class Forbidden(AuthError):
    code = "FORBIDDEN"
    message = "Forbidden"
    status = 403


class DuplicateEmail(AuthError):
    code = "DUPLICATE_EMAIL"
    message = "Email already registered"
    status = 409
