"""ORM model for application users and the manager/employee hierarchy."""

import secrets
import string

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, String, func, true

from orgguard.models.base import Base

_ID_ALPHABET = string.ascii_lowercase + string.digits
ID_LENGTH = 25


def generate_user_id() -> str:
    """Return a new opaque user id: 'c' followed by 24 random lowercase alphanumerics."""
    return "c" + "".join(secrets.choice(_ID_ALPHABET) for _ in range(ID_LENGTH - 1))


class User(Base):
    """
    User account for JWT authentication and hierarchy-based access control.

    role: 'EMPLOYEE', 'MANAGER' or 'ADMIN'
    manager_id: weak reference to another user; NULL marks a root of the hierarchy.
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("role IN ('EMPLOYEE', 'MANAGER', 'ADMIN')", name="ck_users_role"),
        CheckConstraint("manager_id IS NULL OR manager_id <> id", name="ck_users_not_own_manager"),
    )

    id = Column(String(100), primary_key=True, default=generate_user_id)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False, default="")
    last_name = Column(String(100), nullable=False, default="")
    position = Column(String(255), nullable=True)
    role = Column(String(32), nullable=False, default="EMPLOYEE")
    manager_id = Column(
        String(100),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
