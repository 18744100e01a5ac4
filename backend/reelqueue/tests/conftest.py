"""
Root test configuration and fixtures.

Provides:
- db_engine / session_factory / db_session: fresh SQLite in-memory database
  per test (one shared connection via StaticPool, so every session sees
  the same data)
- clock: controllable current time for the dispatcher
- make_job: inserts generation jobs with explicit ordering fields
- make_backend: GenerationBackend whose handlers record calls and replay
  scripted outcomes
- temp_config_dir / make_yaml_config: YAML config files on disk
"""

import itertools
import os
import tempfile
import uuid
import pytest
import yaml
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Generator, Iterable

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from reelqueue.db_base import Base
from reelqueue.models.base import utc_now
from reelqueue.models.generation_job import GenerationJob, GenerationJobStatus
from reelqueue.queue.backend import HandlerRegistry, GenerationBackend
from reelqueue.queue.dispatcher import GenerationJobDispatcher

# Set test environment
os.environ.setdefault("ENV", "test")


@pytest.fixture
def db_engine():
    """
    Create an isolated SQLite in-memory engine for one test.

    Dispatcher workers commit through their own sessions, so isolation is
    per engine rather than per rolled-back transaction.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> sessionmaker:
    """Session factory bound to the test engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    """Session for arranging and asserting test data."""
    session = session_factory()
    yield session
    session.close()


# =============================================================================
# Time
# =============================================================================


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(utc_now().replace(microsecond=0))


# =============================================================================
# Jobs
# =============================================================================


@pytest.fixture
def make_job(db_session, clock):
    """
    Factory that inserts a generation job and returns its id.

    Jobs are created ten minutes before the clock, one second apart in
    call order, so creation order is unambiguous.
    """
    sequence = itertools.count()

    def _make(
        tenant_id: str = "tenant-a",
        kind: str = "tts",
        priority: int = 4,
        status: GenerationJobStatus = GenerationJobStatus.PENDING,
        payload: dict | None = None,
        retry_count: int = 0,
        max_retries: int = 3,
        created_at: datetime | None = None,
        scheduled_at: datetime | None = None,
        **fields: Any,
    ) -> str:
        created = created_at or (
            clock.now - timedelta(minutes=10) + timedelta(seconds=next(sequence))
        )
        job = GenerationJob(
            id=str(uuid.uuid4()),
            tenant_id=tenant_id,
            kind=kind,
            payload=payload if payload is not None else {},
            priority=priority,
            status=status,
            retry_count=retry_count,
            max_retries=max_retries,
            created_at=created,
            updated_at=created,
            scheduled_at=scheduled_at or created,
            **fields,
        )
        db_session.add(job)
        db_session.commit()
        return job.id

    return _make


@pytest.fixture
def load_job(db_session):
    """Re-read a job from the database, discarding cached state."""
    def _load(job_id: str) -> GenerationJob:
        db_session.expire_all()
        return db_session.get(GenerationJob, job_id)
    return _load


# =============================================================================
# Backend
# =============================================================================


class RecordingHandler:
    """
    Generation handler that records each call and replays outcomes.

    Each outcome is either returned or, if it is an exception, raised.
    Once the script runs out every call succeeds with {"ok": True}.
    """

    def __init__(self, kind: str, calls: list, outcomes: Iterable[Any] = ()):
        self.kind = kind
        self.calls = calls
        self.outcomes = list(outcomes)

    async def execute(self, payload):
        self.calls.append((self.kind, payload))
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        return {"ok": True}


@pytest.fixture
def backend_calls() -> list:
    """(kind, payload) of every handler call, in call order."""
    return []


@pytest.fixture
def make_backend(backend_calls):
    """
    Factory for a GenerationBackend.

    Usage:
        backend = make_backend(tts=[], talking_head=[Exception("HTTP 429")])
    """
    def _make(**outcomes_by_kind: Iterable[Any]) -> GenerationBackend:
        registry = HandlerRegistry()
        for kind, outcomes in outcomes_by_kind.items():
            registry.register(kind, RecordingHandler(kind, backend_calls, outcomes))
        return GenerationBackend(registry)
    return _make


@pytest.fixture
def make_dispatcher(session_factory, clock):
    def _make(backend: GenerationBackend, worker_count: int = 1) -> GenerationJobDispatcher:
        return GenerationJobDispatcher(
            session_factory=session_factory,
            backend=backend,
            worker_count=worker_count,
            clock=clock,
        )
    return _make


# =============================================================================
# Markers
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "security: mark test as security-focused")
    config.addinivalue_line("markers", "slow: mark test as slow-running")


# =============================================================================
# Shared Config Fixtures
# =============================================================================


@pytest.fixture
def temp_config_dir():
    """Create a temporary directory for YAML config files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def make_yaml_config(temp_config_dir):
    """
    Factory fixture that writes a YAML config file and returns its path.

    Usage:
        config_path = make_yaml_config("endpoints.yaml", {"endpoints": {...}})
    """
    def _make(filename: str, config: dict) -> Path:
        config_path = temp_config_dir / filename
        with open(config_path, "w") as f:
            yaml.dump(config, f)
        return config_path
    return _make
