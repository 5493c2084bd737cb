"""
Shared fixtures.

Everything runs against MockSnowflakeConnection, so the repositories'
real SQL paths are exercised without a database.
"""

from datetime import datetime, timedelta, timezone

import pytest

from swimschool.core.progress.badges import BadgeService
from swimschool.core.progress.catalog import load_badge_catalog, load_skill_catalog
from swimschool.core.progress.repositories import StudentLocks
from swimschool.core.progress.tracking import ProgressTracker
from swimschool.infrastructure.snowflake.client import MockSnowflakeConnection
from swimschool.infrastructure.snowflake.repositories import (
    SnowflakeCountersRepository,
    SnowflakeSkillProgressRepository,
)


class StepClock:
    """Deterministic clock: each call is one second after the last."""

    def __init__(self, start: datetime = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)):
        self._now = start

    def __call__(self) -> datetime:
        self._now += timedelta(seconds=1)
        return self._now


@pytest.fixture(scope="session")
def skill_catalog():
    return load_skill_catalog()


@pytest.fixture(scope="session")
def badge_catalog():
    return load_badge_catalog()


@pytest.fixture
def connection():
    conn = MockSnowflakeConnection()
    yield conn
    conn._clear()


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def progress_repository(connection):
    return SnowflakeSkillProgressRepository(connection)


@pytest.fixture
def counters_repository(connection):
    return SnowflakeCountersRepository(connection)


@pytest.fixture
def locks():
    return StudentLocks()


@pytest.fixture
def tracker(progress_repository, skill_catalog, clock):
    return ProgressTracker(
        repository=progress_repository,
        catalog=skill_catalog,
        tenant_id="school-a",
        clock=clock,
    )


@pytest.fixture
def badge_service(counters_repository, badge_catalog, locks, clock):
    return BadgeService(
        repository=counters_repository,
        catalog=badge_catalog,
        tenant_id="school-a",
        locks=locks,
        clock=clock,
    )
