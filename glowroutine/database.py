"""
glowroutine/database.py
───────────────────────
Database engine + table creation using SQLModel.

• Engine is created once at import time from Settings.
• create_db_and_tables() is called from the lifespan hook in main.py.
• The SQL stores open their own short-lived sessions on this engine;
  tests hand them an in-memory engine instead.
"""

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

from glowroutine.core.config import get_settings

settings = get_settings()

# SQLite needs check_same_thread=False; other drivers do not.
_connect_args = {"check_same_thread": False} if settings.is_sqlite else {}

engine = create_engine(
    settings.DATABASE_URL,
    echo=settings.APP_DEBUG,       # SQL logging only in debug mode
    connect_args=_connect_args,
)


def create_db_and_tables(bind: Engine = engine) -> None:
    """Create all tables declared in SQLModel models."""
    # Importing registers the tables on SQLModel.metadata
    from glowroutine import models  # noqa: F401

    SQLModel.metadata.create_all(bind)
