"""
Per-request authentication gate and the route decorators built on it.

AuthGate.authenticate() resolves the caller in this order, stopping at the
first failure:
  1. bearer token from the Authorization header, else the session cookie
  2. no token at all                       -> MissingCredential
  3. signature / expiry                    -> InvalidToken | TokenExpired
  4. token subject must still exist        -> InvalidUser
  5. token `sid` must be a live session    -> SessionExpired
  6. strict policy: device fingerprint     -> revoke + SessionMismatch
  7. best-effort last-used update
  8. account status                        -> Forbidden (403)
  9. Identity attached to flask.g
"""
from __future__ import annotations

import enum
import logging
from dataclasses import asdict, dataclass
from functools import wraps
from typing import Iterable, Optional

from flask import current_app, g, request
from sqlalchemy.exc import SQLAlchemyError

from utils.exceptions import (
    AuthError,
    ConfigurationError,
    Forbidden,
    InvalidUser,
    MissingCredential,
    SessionExpired,
    SessionMismatch,
)
from utils.request import device_context
from utils.sessions import fingerprint_matches

logger = logging.getLogger(__name__)

STATUS_MESSAGES = {
    "suspended": "Account suspended",
    "pending_approval": "Account pending approval",
}


class ValidationPolicy(enum.Enum):
    STRICT = "strict"
    RELAXED = "relaxed"


@dataclass(frozen=True)
class Identity:
    id: str
    email: str
    role: str
    status: str
    name: Optional[str] = None
    session_id: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def check_account_status(user) -> None:
    message = STATUS_MESSAGES.get(user.status)
    if message:
        raise Forbidden(message)


class AuthGate:
    def __init__(self, users, sessions, policy: ValidationPolicy = ValidationPolicy.STRICT,
                 session_cookie_name: str = "session"):
        self.users = users
        self.sessions = sessions
        self.policy = ValidationPolicy(policy)
        self.session_cookie_name = session_cookie_name

    def extract_token(self, req) -> Optional[str]:
        auth = req.headers.get("Authorization", "")
        if auth.startswith("Bearer "):
            token = auth.split(" ", 1)[1].strip()
            if token:
                return token
        return req.cookies.get(self.session_cookie_name) or None

    def authenticate(self, req):
        """Return (Identity, AuthSession | None) or raise an AuthError."""
        token = self.extract_token(req)
        if not token:
            raise MissingCredential()

        claims = self.sessions.signer.verify_token(token, expected_type="access")

        user = self.users.get(claims.get("sub"))
        if user is None:
            raise InvalidUser()

        auth_session = None
        session_id = claims.get("sid")
        if session_id:
            auth_session = self.sessions.find_live_session(session_id, user.id)
            if auth_session is None:
                raise SessionExpired()

            strict = self.policy is ValidationPolicy.STRICT
            context = device_context(req)
            if strict and not fingerprint_matches(auth_session, context):
                self.sessions.revoke_session(auth_session)
                logger.warning("fingerprint mismatch, session revoked sid=%s user=%s", session_id, user.id)
                raise SessionMismatch()

            try:
                self.sessions.touch_session(auth_session, context if strict else None)
            except SQLAlchemyError:
                logger.warning("could not update last-used for sid=%s", session_id, exc_info=True)

        check_account_status(user)

        identity = Identity(
            id=str(user.id),
            email=user.email,
            role=user.role,
            status=user.status,
            name=user.name,
            session_id=session_id,
        )
        return identity, auth_session

    def try_authenticate(self, req):
        """Optional-auth variant: (None, None) instead of raising."""
        try:
            return self.authenticate(req)
        except AuthError as err:
            logger.debug("optional auth: anonymous (%s)", err.code)
        except (ConfigurationError, SQLAlchemyError):
            logger.exception("optional auth failed unexpectedly")
        return None, None


def _gate() -> AuthGate:
    return current_app.extensions["auth_gate"]


def _attach(identity, auth_session):
    g.identity = identity
    g.auth_session = auth_session


def login_required():
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            identity, auth_session = _gate().authenticate(request)
            _attach(identity, auth_session)
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def optional_auth():
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            identity, auth_session = _gate().try_authenticate(request)
            _attach(identity, auth_session)
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def roles_required(required_roles: Iterable[str]):
    """
    Allow access if the caller's role is one of `required_roles`; 403 otherwise.
    Authentication runs first, so unauthenticated callers still get a 401.
    """
    req = set(required_roles or [])

    def decorator(fn):
        @wraps(fn)
        @login_required()
        def wrapper(*args, **kwargs):
            identity = getattr(g, "identity", None)
            if identity is None or identity.role not in req:
                raise Forbidden("Insufficient role")
            return fn(*args, **kwargs)

        return wrapper

    return decorator
