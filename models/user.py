from models.base_model import Base, BaseModel
from sqlalchemy import Column, String, JSON
from sqlalchemy.orm import relationship

ROLES = ("admin", "inbound", "outbound")
STATUSES = ("active", "suspended", "pending_approval")


class User(BaseModel, Base):
    __tablename__ = "users"
    email = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(String(200), nullable=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(32), nullable=False, default="outbound", index=True)
    status = Column(String(32), nullable=False, default="active", index=True)
    subscription = Column(JSON, nullable=True)

    sessions = relationship(
        "AuthSession",
        back_populates="user",
        passive_deletes=True,
    )

    @property
    def password(self):
        raise AttributeError("Password: Write-only field")

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def __repr__(self):
        return f"<User {self.id} role={self.role} status={self.status}>"
