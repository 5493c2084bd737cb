"""
Persistence interfaces for progress data.

The core only depends on these protocols. The Snowflake implementations
live in `swimschool.infrastructure.snowflake.repositories`; tests and local
development run them against the in-memory mock connection.

Every key is scoped by tenant: one deployment serves many swim schools and
two schools can have a student with the same id.
"""

import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Generator, Optional, Protocol

from .models import CounterUpdate, StudentProgress, StudentProgressCounters


class SkillProgressRepository(Protocol):
    """Per-(tenant, student, skill) assessment records."""

    def get(self, tenant_id: str, student_id: str, skill_id: str) -> Optional[StudentProgress]:
        """Return the record, or None if the skill was never assessed."""
        ...

    def record_assessment(
        self,
        tenant_id: str,
        student_id: str,
        skill_id: str,
        level: int,
        notes: Optional[str],
        assessed_at: datetime,
    ) -> StudentProgress:
        """
        Create or replace the record, incrementing attempts from the prior
        value. Must be atomic for a single key.
        """
        ...

    def list_for_student(self, tenant_id: str, student_id: str) -> list[StudentProgress]:
        ...

    def delete_for_student(self, tenant_id: str, student_id: str) -> int:
        """Delete all of a student's records and return how many went."""
        ...


class CountersRepository(Protocol):
    """Per-(tenant, student) badge counters and earned-badge membership."""

    def get_or_create(self, tenant_id: str, student_id: str) -> StudentProgressCounters:
        """Return the snapshot, creating a zeroed one on first access."""
        ...

    def update(
        self,
        tenant_id: str,
        student_id: str,
        update: CounterUpdate,
    ) -> StudentProgressCounters:
        """
        Apply a partial update in the store and return the new snapshot.

        Only the fields in the update are written and stroke levels merge
        into the stored map, all in one statement, so concurrent updates
        to different fields from other processes are not lost. Earned
        badges are written by add_badge.
        """
        ...

    def add_badge(
        self,
        tenant_id: str,
        student_id: str,
        badge_id: str,
        earned_at: datetime,
    ) -> bool:
        """Record an earned badge. Returns False if it was already held."""
        ...

    def delete(self, tenant_id: str, student_id: str) -> None:
        """Drop counters and earned badges for the student."""
        ...


class _LockEntry:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.holders = 0


class StudentLocks:
    """
    One lock per (tenant, student) for read-modify-write sequences.

    Create a single instance per process and share it across services;
    separate instances don't exclude each other. An entry lives only while
    some thread holds or waits for it.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[tuple[str, str], _LockEntry] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _acquire_entry(self, key: tuple[str, str]) -> _LockEntry:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = _LockEntry()
                self._locks[key] = entry
            entry.holders += 1
            return entry

    def _release_entry(self, key: tuple[str, str], entry: _LockEntry) -> None:
        with self._guard:
            entry.holders -= 1
            if entry.holders == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, tenant_id: str, student_id: str) -> Generator[None, None, None]:
        key = (tenant_id, student_id)
        entry = self._acquire_entry(key)
        try:
            with entry.lock:
                yield
        finally:
            self._release_entry(key, entry)
