# tradematch/db/session.py
"""Database session factory and initialization."""

from pathlib import Path
from typing import Optional

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine, Session

from tradematch import config
from tradematch.db.models import TradeRecord  # noqa: F401 - registers the trade table



def make_engine(database_url: Optional[str] = None) -> Engine:
    """Engine for the configured DATABASE_URL (local SQLite by default)."""
    database_url = database_url or config.DATABASE_URL

    # Make sure the directory of a file-backed SQLite database exists
    if database_url.startswith("sqlite:///") and ":memory:" not in database_url:
        db_path = database_url.replace("sqlite:///", "")
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    return create_engine(
        database_url,
        connect_args={"check_same_thread": False} if "sqlite" in database_url else {},
        echo=False,
    )


def create_db_and_tables(engine: Engine) -> None:
    """Create all tables if they don't exist."""
    SQLModel.metadata.create_all(engine)


def get_session(engine: Engine) -> Session:
    """Get a new database session."""
    return Session(engine)


def init_db(database_url: Optional[str] = None) -> Engine:
    """Initialize database on startup."""
    engine = make_engine(database_url)
    create_db_and_tables(engine)
    return engine
