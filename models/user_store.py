"""
Credential store: persistence for User records.
Emails are trimmed and lowercased on every read and write path.
"""
from __future__ import annotations

from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from models.user import User
from utils.exceptions import DuplicateEmail


def normalize_email(email: Optional[str]) -> str:
    return email.strip().lower() if isinstance(email, str) else ""


class UserStore:
    UPDATABLE = ("name", "role", "status", "password_hash", "subscription")

    def __init__(self, storage):
        self.storage = storage

    def get(self, user_id: Optional[str]) -> Optional[User]:
        return self.storage.get(User, user_id)

    def get_by_email(self, email: Optional[str]) -> Optional[User]:
        email = normalize_email(email)
        if not email:
            return None
        session = self.storage.get_session()
        return session.query(User).filter(User.email == email).first()

    def create(self, email: str, password_hash: str, name: Optional[str] = None,
               role: str = "outbound", status: str = "active", subscription: Optional[dict] = None) -> User:
        email = normalize_email(email)
        if self.get_by_email(email):
            raise DuplicateEmail()
        user = User(
            email=email,
            name=name,
            password_hash=password_hash,
            role=role,
            status=status,
            subscription=subscription,
        )
        self.storage.new(user)
        try:
            self.storage.save()
        except IntegrityError:
            # lost a race with a concurrent signup for the same address
            raise DuplicateEmail()
        return user

    def update(self, user: User, **fields) -> User:
        for key, value in fields.items():
            if key not in self.UPDATABLE:
                raise ValueError(f"field {key!r} cannot be updated")
            setattr(user, key, value)
        self.storage.new(user)
        self.storage.save()
        return user

    def list(self, page: int = 1, limit: int = 20, role: Optional[str] = None,
             status: Optional[str] = None, search: Optional[str] = None) -> Tuple[List[User], int]:
        session = self.storage.get_session()
        query = session.query(User)
        if role:
            query = query.filter(User.role == role)
        if status:
            query = query.filter(User.status == status)
        if search:
            term = search.strip().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
            like = f"%{term}%"
            query = query.filter(or_(User.email.ilike(like, escape="\\"), User.name.ilike(like, escape="\\")))
        total = query.count()
        rows = query.order_by(User.created_at.desc(), User.email.asc()).offset((page - 1) * limit).limit(limit).all()
        return rows, total
