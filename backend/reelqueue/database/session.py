"""
Database engine and sessions for the API and the dispatcher.

Requests get one session each through get_db_session. The queue pass gets
the session factory itself, since every dispatcher worker opens and closes
its own session per job; the connection pool is therefore sized to the
worker count.

Usage:
    from reelqueue.database.session import get_db_session

    @router.get("/jobs")
    async def list_jobs(db: Session = Depends(get_db_session)):
        ...
"""

import os
import logging
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool
from fastapi import HTTPException, status

from reelqueue.config.queue_settings import QueueSettings

logger = logging.getLogger(__name__)

_engine = None
_SessionLocal = None

# Connections kept beyond one per worker, for API requests
BASE_POOL_SIZE = 5


def _get_database_url() -> str:
    """
    DATABASE_URL from the environment.

    Hosted Postgres often hands out postgres:// URLs, which SQLAlchemy
    only accepts as postgresql://.
    """
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise ValueError("DATABASE_URL environment variable is not set")

    if database_url.startswith("postgres://"):
        database_url = "postgresql://" + database_url[len("postgres://"):]

    return database_url


def _create_engine(database_url: str, worker_count: int) -> Engine:
    if database_url.startswith("sqlite"):
        # Local development; SQLite handles its own pooling
        return create_engine(database_url, connect_args={"check_same_thread": False})

    return create_engine(
        database_url,
        poolclass=QueuePool,
        pool_size=BASE_POOL_SIZE + worker_count,
        max_overflow=10,
        pool_pre_ping=True,
        pool_recycle=1800,
    )


def get_engine() -> Engine:
    """Engine singleton, created on first use."""
    global _engine
    if _engine is None:
        try:
            database_url = _get_database_url()
        except ValueError as e:
            logger.error("database.engine_unavailable", extra={"error": str(e)})
            raise

        worker_count = QueueSettings.from_env().worker_count
        _engine = _create_engine(database_url, worker_count)
        logger.info(
            "database.engine_created",
            extra={"dialect": _engine.dialect.name, "worker_count": worker_count},
        )
    return _engine


def get_session_factory() -> sessionmaker:
    """Session factory singleton bound to get_engine()."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=get_engine())
    return _SessionLocal


def _factory_or_503() -> sessionmaker:
    try:
        return get_session_factory()
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not configured"
        )


async def get_db_session() -> Generator[Session, None, None]:
    """
    FastAPI dependency: one session per request, always closed.

    Raises HTTP 503 if DATABASE_URL is not configured.
    """
    session = _factory_or_503()()
    try:
        yield session
    finally:
        session.close()


async def get_session_factory_dependency() -> sessionmaker:
    """FastAPI dependency handing the session factory to the queue pass."""
    return _factory_or_503()
