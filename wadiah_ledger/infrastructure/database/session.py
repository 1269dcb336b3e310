"""Database engine and session management"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker, Session
from wadiah_ledger.config import settings


def build_engine(database_url: str) -> Engine:
    """
    Create an engine for the configured backend.

    PostgreSQL gets a connection pool (recycled hourly to avoid stale
    connections). SQLite gets a busy timeout so concurrent writers to the
    same balance row queue on the database lock instead of failing.
    """
    if make_url(database_url).get_backend_name() == "sqlite":
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=10,
        pool_recycle=3600,
    )


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Session:
    """Dependency injection for database sessions"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
