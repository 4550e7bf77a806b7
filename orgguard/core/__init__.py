"""Core app configuration and database."""

from orgguard.core.config import get_settings, settings
from orgguard.core.database import get_db

__all__ = ["get_settings", "settings", "get_db"]
