"""
Session manager: creation, lookup by refresh token, rotation and revocation
of login sessions.

A session is ACTIVE until it is revoked or passes expires_at; both are
terminal. Refresh tokens are opaque random strings handed to the client once;
only their SHA-256 digest is stored, and every successful rotation replaces it,
so a given refresh token can be exchanged at most once.

Replaying an already-rotated refresh token simply fails the lookup. It does
not revoke the session it used to belong to.
"""
from __future__ import annotations

import ipaddress
import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, Union

from models.auth_session import AuthSession
from models.base_model import utcnow
from utils.security import (
    DEFAULT_ACCESS_TTL_MS,
    DEFAULT_REFRESH_TTL_MS,
    generate_refresh_token,
    hash_value,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeviceContext:
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None

    @property
    def user_agent_hash(self) -> Optional[str]:
        return hash_value(normalize_user_agent(self.user_agent))

    @property
    def ip_hash(self) -> Optional[str]:
        return hash_value(normalize_ip(self.ip_address))


@dataclass
class IssuedSession:
    session: AuthSession
    access_token: str
    refresh_token: str


def normalize_user_agent(user_agent: Optional[str]) -> str:
    return user_agent.strip().lower() if user_agent else ""


def normalize_ip(ip: Optional[str]) -> str:
    """
    Reduce an address to a coarse network prefix: first three octets for
    IPv4, first four groups for IPv6. Unparseable input is returned trimmed.
    """
    if not ip:
        return ""
    value = ip.strip()
    try:
        addr = ipaddress.ip_address(value)
    except ValueError:
        return value
    if addr.version == 6 and addr.ipv4_mapped is not None:
        addr = addr.ipv4_mapped
    if addr.version == 4:
        return ".".join(str(addr).split(".")[:3])
    return ":".join(addr.exploded.split(":")[:4])


def fingerprint_matches(auth_session: AuthSession, context: DeviceContext) -> bool:
    """
    Compare stored fingerprint hashes with the caller's. A side only counts
    when both the session and the caller have a value for it.
    """
    ua_hash = context.user_agent_hash
    if auth_session.user_agent_hash and ua_hash and auth_session.user_agent_hash != ua_hash:
        return False
    ip_hash = context.ip_hash
    if auth_session.ip_hash and ip_hash and auth_session.ip_hash != ip_hash:
        return False
    return True


class SessionManager:
    def __init__(self, store, signer, access_ttl_ms: int = DEFAULT_ACCESS_TTL_MS,
                 refresh_ttl_ms: int = DEFAULT_REFRESH_TTL_MS):
        self.store = store
        self.signer = signer
        self.access_ttl_ms = access_ttl_ms
        self.refresh_ttl_ms = refresh_ttl_ms

    def _access_token(self, user, session_id: str) -> str:
        return self.signer.sign_access(
            {
                "sub": str(user.id),
                "email": user.email,
                "role": user.role,
                "sid": session_id,
            },
            ttl_ms=self.access_ttl_ms,
        )

    def create_session(self, user, context: Optional[DeviceContext] = None) -> IssuedSession:
        context = context or DeviceContext()
        now = utcnow()
        session_id = str(uuid.uuid4())
        refresh_token = generate_refresh_token()
        # sign first so a missing secret never leaves an orphan session row
        access_token = self._access_token(user, session_id)

        auth_session = self.store.create(
            session_id=session_id,
            user_id=user.id,
            refresh_token_hash=hash_value(refresh_token),
            user_agent_hash=context.user_agent_hash,
            ip_hash=context.ip_hash,
            expires_at=now + timedelta(milliseconds=self.refresh_ttl_ms),
            now=now,
        )
        logger.info("session created sid=%s user=%s", session_id, user.id)
        return IssuedSession(auth_session, access_token, refresh_token)

    def find_session_by_refresh_token(self, refresh_token: Optional[str],
                                      context: Optional[DeviceContext] = None) -> Optional[AuthSession]:
        """
        Resolve a live session from a raw refresh token. Unknown, expired,
        revoked and fingerprint-mismatched tokens all yield None.
        """
        if not refresh_token:
            return None
        auth_session = self.store.find_live_by_refresh_hash(hash_value(refresh_token))
        if auth_session is None:
            return None
        if not fingerprint_matches(auth_session, context or DeviceContext()):
            logger.info("refresh rejected: fingerprint mismatch sid=%s", auth_session.session_id)
            return None
        return auth_session

    def find_live_session(self, session_id: Optional[str], user_id: Optional[str] = None) -> Optional[AuthSession]:
        return self.store.find_live(session_id, user_id)

    def rotate_session(self, auth_session: AuthSession, user,
                       context: Optional[DeviceContext] = None) -> Optional[IssuedSession]:
        """
        Issue a new refresh token and access token for `auth_session`,
        overwriting the stored hash. Returns None if the session was rotated,
        revoked or expired by someone else in the meantime.
        """
        context = context or DeviceContext()
        now = utcnow()
        old_hash = auth_session.refresh_token_hash
        refresh_token = generate_refresh_token()
        access_token = self._access_token(user, auth_session.session_id)

        rotated = self.store.rotate(
            auth_session,
            old_hash=old_hash,
            new_hash=hash_value(refresh_token),
            expires_at=now + timedelta(milliseconds=self.refresh_ttl_ms),
            now=now,
            user_agent_hash=context.user_agent_hash,
            ip_hash=context.ip_hash,
        )
        if not rotated:
            logger.info("rotation lost for sid=%s", auth_session.session_id)
            return None
        return IssuedSession(auth_session, access_token, refresh_token)

    def revoke_session(self, session: Union[AuthSession, str, None]) -> None:
        """Revoke by object or by session id. Revoking twice is a no-op."""
        if not session:
            return
        session_id = session if isinstance(session, str) else session.session_id
        if self.store.revoke(session_id):
            logger.info("session revoked sid=%s", session_id)

    def revoke_all_for_user(self, user_id: str) -> int:
        count = self.store.revoke_all_for_user(user_id)
        if count:
            logger.info("revoked %d session(s) for user=%s", count, user_id)
        return count

    def list_sessions(self, user_id: str):
        return self.store.list_live_for_user(user_id)

    def touch_session(self, auth_session: AuthSession, context: Optional[DeviceContext] = None) -> None:
        """Update last-used (and fingerprint hashes when a context is given)."""
        context = context or DeviceContext()
        self.store.touch(auth_session, utcnow(), context.user_agent_hash, context.ip_hash)

    def purge_expired(self, grace_ms: int = 0) -> int:
        return self.store.purge_expired(grace=timedelta(milliseconds=grace_ms))


def cookie_options(config, kind: str) -> dict:
    """
    Keyword arguments for Response.set_cookie for the "session" or "refresh"
    cookie. max_age is in seconds.
    """
    ttl_ms = config["ACCESS_TOKEN_TTL_MS"] if kind == "session" else config["REFRESH_TOKEN_TTL_MS"]
    return {
        "httponly": True,
        "samesite": config.get("COOKIE_SAMESITE", "None"),
        "secure": bool(config.get("COOKIE_SECURE")),
        "domain": config.get("COOKIE_DOMAIN"),
        "path": "/",
        "max_age": ttl_ms // 1000,
    }
