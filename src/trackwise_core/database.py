"""Database connection and session management."""
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from .config import get_settings


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """SQLite ignores ON DELETE rules unless foreign keys are switched on per connection."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_url: str, echo: bool = False, **engine_kwargs) -> Engine:
    """
    Create a SQLAlchemy engine for the given URL.

    PostgreSQL gets a conservative connection pool. SQLite connections are
    shared across request threads and have foreign key enforcement enabled.

    Args:
        database_url: SQLAlchemy database URL
        echo: Log emitted SQL
        **engine_kwargs: Extra keyword arguments for create_engine (e.g. poolclass)

    Returns:
        Configured Engine
    """
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            **engine_kwargs,
        )
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    settings = get_settings()
    return create_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,          # Verify connections before using
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_recycle=settings.db_pool_recycle,
        pool_timeout=settings.db_pool_timeout,
        **engine_kwargs,
    )


settings = get_settings()

# Create database engine
engine = build_engine(settings.database_url, echo=settings.sql_echo)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """
    Dependency function to get database session.

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
