"""Database package — async SQLAlchemy engine, session factory, Base."""
from app.db.base import Base, async_session_factory, dialect_name, engine, get_db, get_session_factory

__all__ = ["Base", "async_session_factory", "dialect_name", "engine", "get_db", "get_session_factory"]
