"""
Shared pytest fixtures.

Every test gets its own SQLite file under tmp_path, so nothing leaks
between tests and the foreign-key behaviour matches a server database.
"""
from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from identitydb.database import Database
from identitydb.identity import Identity


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def db(tmp_path):
    database = Database.from_url(f"sqlite:///{(tmp_path / 'identity.db').as_posix()}")
    yield database
    if not database.closed:
        database.dispose()


@pytest.fixture
def identity(db):
    identity = Identity(db)
    identity.build()
    return identity


@pytest.fixture
def clock():
    return FrozenClock(datetime(2024, 1, 1, 12, 0, 0))


@pytest.fixture
def frozen_identity(db, clock):
    identity = Identity(db, clock=clock)
    identity.build()
    return identity
