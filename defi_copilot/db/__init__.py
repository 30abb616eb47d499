"""Persistence: SQLAlchemy models, engine construction and repositories"""

from .models import Base, ChatMessage, SystemEvent, User
from .session import build_engine, build_session_factory, create_schema, normalize_database_url
from .users import UserStore

__all__ = [
    "Base",
    "ChatMessage",
    "SystemEvent",
    "User",
    "UserStore",
    "build_engine",
    "build_session_factory",
    "create_schema",
    "normalize_database_url",
]
