"""Database setup and session management."""

import logging
from contextlib import contextmanager
from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


@lru_cache
def get_engine():
    """Get or create the database engine (cached).

    SQLite URLs get ``check_same_thread=False`` so the engine can be shared
    between FastAPI's threadpool and Celery worker threads. Other backends
    use connection pre-ping so long-idle workers recover from dropped
    connections.
    """
    database_url = settings.DATABASE_URL

    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            echo=False,
        )
    else:
        engine = create_engine(
            database_url,
            pool_pre_ping=True,
            echo=False,
        )
    logger.debug("Database engine created for %s", engine.url.get_backend_name())
    return engine


def get_session_local():
    """Get a sessionmaker bound to the engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=get_engine())


def get_db():
    """Dependency that provides a database session.

    Transaction conventions:
    - Services ``commit()`` at the end of each job step, because every job
      step is its own unit of work and must survive a later retry.
    - On failure, services ``rollback()`` before writing the error status so
      the status update is not lost with the failed work.
    """
    SessionLocal = get_session_local()
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def session_scope() -> Session:
    """Context-managed session for Celery tasks (no FastAPI dependency system)."""
    SessionLocal = get_session_local()
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
