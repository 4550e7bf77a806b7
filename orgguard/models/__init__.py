"""SQLAlchemy ORM models."""

from orgguard.models.base import Base
from orgguard.models.user import User

__all__ = ["Base", "User"]
