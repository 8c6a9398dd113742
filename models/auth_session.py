"""
AuthSession model: one row per login/device.
Fields:
- session_id (unique) - embedded as `sid` in access tokens
- user_id (String(36)) - FK to users.id
- refresh_token_hash - SHA-256 of the current refresh token, never the raw token
- user_agent_hash / ip_hash - coarse device fingerprint
- expires_at, last_used_at, revoked_at (naive UTC)
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from models.base_model import BaseModel, Base, utcnow


class AuthSession(BaseModel, Base):
    __tablename__ = "auth_sessions"

    session_id = Column(String(36), nullable=False, unique=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    refresh_token_hash = Column(String(64), nullable=False, unique=True)
    user_agent_hash = Column(String(64), nullable=True)
    ip_hash = Column(String(64), nullable=True)
    expires_at = Column(DateTime, nullable=False)
    last_used_at = Column(DateTime, nullable=True, default=utcnow)
    revoked_at = Column(DateTime, nullable=True)

    user = relationship("User", back_populates="sessions")

    __table_args__ = (Index("ix_auth_sessions_expires_at", "expires_at"),)

    def __repr__(self):
        return f"<AuthSession sid={self.session_id} user={self.user_id} revoked={self.revoked_at is not None}>"
