"""Engine and session factory for the automation tables.

The database URL and echo flag come from ``Settings`` (``DATABASE_URL``,
``SQL_ECHO``), so the file/env precedence matches every other setting.

Usage:
    from stratagen.db.connection import get_db, init_db

    init_db()  # Create tables
    db = next(get_db())
"""

from collections.abc import Generator
from typing import Any

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from stratagen.config import Settings, load_settings
from stratagen.db.models import Base


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def build_engine(settings: Settings) -> Engine:
    """Create the engine described by ``settings``.

    SQLite connections are shared across the threadpool and run with
    foreign keys enforced.
    """
    url = settings.database_url
    connect_args = {"check_same_thread": False} if _is_sqlite(url) else {}
    db_engine = create_engine(url, connect_args=connect_args, echo=settings.sql_echo)

    if _is_sqlite(url):

        @event.listens_for(db_engine, "connect")
        def _enable_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return db_engine


engine = build_engine(load_settings())

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Yield a database session for FastAPI's Depends().

    Yields:
        Session: SQLAlchemy session that will be closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create all tables. Idempotent."""
    Base.metadata.create_all(bind=engine)
