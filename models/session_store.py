"""
Session store: CRUD over AuthSession rows keyed by session id and by
refresh-token hash. Every mutation touches a single row, so no multi-statement
transaction is needed for any invariant.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import and_, or_

from models.auth_session import AuthSession
from models.base_model import utcnow


class SessionStore:
    def __init__(self, storage):
        self.storage = storage

    def _live(self, query, now: datetime):
        return query.filter(AuthSession.revoked_at.is_(None), AuthSession.expires_at > now)

    def create(self, session_id: str, user_id: str, refresh_token_hash: str, expires_at: datetime,
               user_agent_hash: Optional[str] = None, ip_hash: Optional[str] = None,
               now: Optional[datetime] = None) -> AuthSession:
        auth_session = AuthSession(
            session_id=session_id,
            user_id=user_id,
            refresh_token_hash=refresh_token_hash,
            user_agent_hash=user_agent_hash,
            ip_hash=ip_hash,
            expires_at=expires_at,
            last_used_at=now or utcnow(),
        )
        self.storage.new(auth_session)
        self.storage.save()
        return auth_session

    def find_live(self, session_id: Optional[str], user_id: Optional[str] = None) -> Optional[AuthSession]:
        if not session_id:
            return None
        session = self.storage.get_session()
        query = session.query(AuthSession).filter(AuthSession.session_id == session_id)
        if user_id:
            query = query.filter(AuthSession.user_id == user_id)
        return self._live(query, utcnow()).first()

    def find_live_by_refresh_hash(self, refresh_token_hash: Optional[str]) -> Optional[AuthSession]:
        if not refresh_token_hash:
            return None
        session = self.storage.get_session()
        query = session.query(AuthSession).filter(AuthSession.refresh_token_hash == refresh_token_hash)
        return self._live(query, utcnow()).first()

    def list_live_for_user(self, user_id: str) -> List[AuthSession]:
        session = self.storage.get_session()
        query = session.query(AuthSession).filter(AuthSession.user_id == user_id)
        return self._live(query, utcnow()).order_by(AuthSession.last_used_at.desc()).all()

    def rotate(self, auth_session: AuthSession, old_hash: str, new_hash: str, expires_at: datetime,
               now: datetime, user_agent_hash: Optional[str] = None, ip_hash: Optional[str] = None) -> bool:
        """
        Compare-and-swap the refresh token hash. Returns False when the row no
        longer holds `old_hash` (a concurrent rotation won) or is no longer live.
        """
        values = {
            "refresh_token_hash": new_hash,
            "expires_at": expires_at,
            "last_used_at": now,
        }
        if user_agent_hash:
            values["user_agent_hash"] = user_agent_hash
        if ip_hash:
            values["ip_hash"] = ip_hash

        session = self.storage.get_session()
        updated = (
            session.query(AuthSession)
            .filter(
                AuthSession.id == auth_session.id,
                AuthSession.refresh_token_hash == old_hash,
                AuthSession.revoked_at.is_(None),
                AuthSession.expires_at > now,
            )
            .update(values, synchronize_session="fetch")
        )
        self.storage.save()
        return updated == 1

    def touch(self, auth_session: AuthSession, now: datetime, user_agent_hash: Optional[str] = None,
              ip_hash: Optional[str] = None) -> None:
        auth_session.last_used_at = now
        if user_agent_hash:
            auth_session.user_agent_hash = user_agent_hash
        if ip_hash:
            auth_session.ip_hash = ip_hash
        self.storage.new(auth_session)
        self.storage.save()

    def revoke(self, session_id: str, now: Optional[datetime] = None) -> bool:
        """Set revoked_at once; an already revoked session keeps its original timestamp."""
        now = now or utcnow()
        session = self.storage.get_session()
        updated = (
            session.query(AuthSession)
            .filter(AuthSession.session_id == session_id, AuthSession.revoked_at.is_(None))
            .update({"revoked_at": now}, synchronize_session="fetch")
        )
        self.storage.save()
        return updated == 1

    def revoke_all_for_user(self, user_id: str, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        session = self.storage.get_session()
        updated = (
            session.query(AuthSession)
            .filter(AuthSession.user_id == user_id, AuthSession.revoked_at.is_(None))
            .update({"revoked_at": now}, synchronize_session="fetch")
        )
        self.storage.save()
        return updated

    def purge_expired(self, now: Optional[datetime] = None, grace: timedelta = timedelta(0)) -> int:
        """Delete expired rows and rows revoked longer than `grace` ago."""
        now = now or utcnow()
        cutoff = now - grace
        session = self.storage.get_session()
        deleted = (
            session.query(AuthSession)
            .filter(or_(AuthSession.expires_at <= now,
                        and_(AuthSession.revoked_at.isnot(None), AuthSession.revoked_at <= cutoff)))
            .delete(synchronize_session=False)
        )
        self.storage.save()
        return deleted
