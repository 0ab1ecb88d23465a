from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest
import pytz

from admission import AdmissionController
from catalog import SessionCatalog
from databases_memory import MemoryStore
from databases_sql import SqliteStore
from directory import Directory
from locks import SessionLocks
from models import Role

NOW = datetime(2026, 3, 2, 8, 0, tzinfo=pytz.UTC)


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def at(hours: float = 0, minutes: float = 0) -> datetime:
    """A UTC instant relative to NOW."""
    return NOW + timedelta(hours=hours, minutes=minutes)


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        s = MemoryStore()
    else:
        s = SqliteStore(tmp_path / "booking.db")
    s.init()
    return s


@pytest.fixture
def locks():
    return SessionLocks()


@pytest.fixture
def catalog(store, locks, clock):
    return SessionCatalog(store, locks, clock)


@pytest.fixture
def admission(store, locks, clock):
    return AdmissionController(store, locks, clock)


@pytest.fixture
def studio(store):
    directory = Directory(store)
    return SimpleNamespace(
        instructor=directory.register_user("Asha", "asha@example.com", Role.INSTRUCTOR),
        other_instructor=directory.register_user("Vikram", "vikram@example.com", Role.INSTRUCTOR),
        admin=directory.register_user("Admin", "admin@example.com", Role.ADMIN),
        members=[
            directory.register_user(f"Member {i}", f"member{i}@example.com", Role.MEMBER)
            for i in range(12)
        ],
        yoga=directory.register_category("Yoga", "Breath and balance"),
        hiit=directory.register_category("HIIT"),
    )


@pytest.fixture
def make_session(catalog, studio):
    def _make(start_hours=3, duration_hours=1, capacity=5, instructor=None, name="Morning Flow"):
        instructor = instructor or studio.instructor
        starts_at = at(start_hours)
        return catalog.create_session(
            instructor.id, studio.yoga.id, name, starts_at,
            starts_at + timedelta(hours=duration_hours), capacity,
        )
    return _make
