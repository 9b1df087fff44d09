"""Shared pytest fixtures for splitstats tests."""

import random
from datetime import datetime, timedelta
from unittest import mock

import pytest

from splitstats.core.db import init_db, make_engine, make_session_factory
from splitstats.services.engine import EngineConfig, ExperimentEngine


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def spy(cls, name):
    """Patch ``cls.name`` with a mock that records calls and still runs the original."""
    return mock.patch.object(cls, name, autospec=True, side_effect=getattr(cls, name))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 3, 10, 12, 0, 0))


@pytest.fixture
def session_factory(tmp_path):
    # A file database so the lookup worker threads get their own connections
    db_engine = make_engine(f"sqlite:///{tmp_path / 'splitstats.db'}")
    init_db(db_engine)
    yield make_session_factory(db_engine)
    db_engine.dispose()


@pytest.fixture
def db(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def engine(session_factory, clock) -> ExperimentEngine:
    # Deterministic random source to avoid sporadic failures
    config = EngineConfig(random=random.Random(1234).random, clock=clock)
    return ExperimentEngine(session_factory, config)
