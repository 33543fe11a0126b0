"""
Planning Database Setup

One engine per process, built from SQLALCHEMY_DATABASE_URL. SQLite is the
development default; any other URL gets a pooled engine.
"""

import os
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool, QueuePool

SQLALCHEMY_DATABASE_URL = os.getenv(
    "SQLALCHEMY_DATABASE_URL",
    "sqlite:///./planning.db"
)

if SQLALCHEMY_DATABASE_URL.startswith("postgres://"):
    SQLALCHEMY_DATABASE_URL = SQLALCHEMY_DATABASE_URL.replace("postgres://", "postgresql://", 1)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # Plan metrics and daily values rely on ON DELETE CASCADE
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_planning_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        planning_engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=False,
        )
        event.listen(planning_engine, "connect", _enable_sqlite_foreign_keys)
        return planning_engine

    return create_engine(
        url,
        poolclass=QueuePool,
        pool_size=int(os.getenv("DB_POOL_SIZE", "10")),
        max_overflow=int(os.getenv("DB_MAX_OVERFLOW", "20")),
        pool_pre_ping=True,
        pool_recycle=int(os.getenv("DB_POOL_RECYCLE", "3600")),
        echo=False,
    )


engine = create_planning_engine(SQLALCHEMY_DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """
    Yield a planning session and close it afterwards.
    Any exception raised by the caller rolls back pending work.
    """
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# `with session_scope() as db:` for scripts and the CLI
session_scope = contextmanager(get_db)


def init_db(bind: Optional[Engine] = None) -> None:
    """Create the audit and planning tables."""
    import models
    # Registers the planning tables on models.Base
    import planning_models  # noqa: F401

    models.Base.metadata.create_all(bind=bind or engine)
