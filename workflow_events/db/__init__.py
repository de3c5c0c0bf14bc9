"""Database package — SQLAlchemy base, engine construction and the Redis client."""

from workflow_events.db.base import Base, build_engine, build_session_factory, create_tables
from workflow_events.db.redis import connect_redis

__all__ = [
    "Base",
    "build_engine",
    "build_session_factory",
    "connect_redis",
    "create_tables",
]
