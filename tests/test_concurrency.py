from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from threading import Barrier

import pytest

from admission import AdmissionController
from conftest import at
from errors import AlreadyBookedError, NotFoundError, SessionFullError
from locks import SessionLocks


def race(calls):
    """Start every call at the same moment; return the result or exception of each."""
    barrier = Barrier(len(calls))

    def run(call):
        barrier.wait()
        try:
            return call()
        except Exception as exc:
            return exc

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        return list(pool.map(run, calls))


def outcome(result):
    return type(result).__name__


def test_two_members_race_for_the_last_seat(admission, studio, make_session):
    session = make_session(capacity=1)
    a, b = studio.members[0], studio.members[1]

    results = race([
        lambda: admission.reserve(a.id, session.id),
        lambda: admission.reserve(b.id, session.id),
    ])

    assert Counter(map(outcome, results)) == {"Reservation": 1, "SessionFullError": 1}
    assert admission.seats_available(session.id) == 0


@pytest.mark.parametrize("capacity", [1, 3, 7])
def test_exactly_capacity_reservations_succeed(admission, studio, make_session, capacity):
    session = make_session(capacity=capacity)

    results = race([
        (lambda member_id=m.id: admission.reserve(member_id, session.id))
        for m in studio.members
    ])

    counts = Counter(map(outcome, results))
    assert counts == {"Reservation": capacity, "SessionFullError": len(studio.members) - capacity}
    assert len(admission.list_session_reservations(session.id, limit=100)) == capacity


def test_same_member_racing_gets_one_seat(admission, studio, make_session):
    session = make_session(capacity=5)
    member = studio.members[0]

    results = race([lambda: admission.reserve(member.id, session.id) for _ in range(8)])

    counts = Counter(map(outcome, results))
    assert counts == {"Reservation": 1, "AlreadyBookedError": 7}
    assert admission.seats_available(session.id) == 4


def test_mixed_reserve_and_cancel_never_overbooks(admission, studio, make_session):
    session = make_session(capacity=2)
    early, late = studio.members[:2], studio.members[2:]
    for m in early:
        admission.reserve(m.id, session.id)

    calls = [(lambda member_id=m.id: admission.cancel(member_id, session.id)) for m in early]
    calls += [(lambda member_id=m.id: admission.reserve(member_id, session.id)) for m in late]
    results = race(calls)

    booked = admission.list_session_reservations(session.id, limit=100)
    assert len(booked) <= session.capacity
    assert all(r is None for r in results[:2])
    assert all(isinstance(r, SessionFullError) or r.session_id == session.id for r in results[2:])
    assert sum(1 for r in results[2:] if not isinstance(r, Exception)) == len(booked)


def test_other_sessions_are_not_blocked(admission, studio, make_session, locks):
    busy = make_session(start_hours=3, name="Busy")
    free = make_session(start_hours=5, name="Free")

    with locks.hold(busy.id), ThreadPoolExecutor(max_workers=1) as pool:
        future = pool.submit(admission.reserve, studio.members[0].id, free.id)
        assert future.result(timeout=5).session_id == free.id


@pytest.mark.parametrize("store", ["sqlite"], indirect=True)
def test_separate_processes_share_capacity_through_sqlite(studio, make_session, clock, store):
    """Two controllers with their own locks model two workers on one database file."""
    session = make_session(capacity=4)
    workers = [AdmissionController(store, SessionLocks(), clock) for _ in range(2)]

    results = race([
        (lambda member_id=m.id, worker=workers[i % 2]: worker.reserve(member_id, session.id))
        for i, m in enumerate(studio.members)
    ])

    counts = Counter(map(outcome, results))
    assert counts["Reservation"] == 4
    assert counts["Reservation"] + counts["SessionFullError"] == len(studio.members)
    assert not any(isinstance(r, AlreadyBookedError) for r in results)


def test_lock_registry_empties_after_unknown_sessions(admission, studio, locks):
    member = studio.members[0]

    for session_id in range(1000, 1100):
        with pytest.raises(NotFoundError):
            admission.reserve(member.id, session_id)

    assert len(locks) == 0


def test_lock_registry_empties_after_contended_reservations(admission, studio, make_session, locks):
    session = make_session(capacity=3)

    race([(lambda member_id=m.id: admission.reserve(member_id, session.id)) for m in studio.members])

    assert len(locks) == 0


def test_overlapping_creates_for_one_instructor_admit_one(catalog, studio):
    def create(start_minutes):
        starts_at = at(3, start_minutes)
        return catalog.create_session(
            studio.instructor.id, studio.yoga.id, f"Flow {start_minutes}",
            starts_at, starts_at + timedelta(hours=1), 5,
        )

    results = race([(lambda m=m: create(m)) for m in range(0, 40, 5)])

    counts = Counter(map(outcome, results))
    assert counts == {"Session": 1, "ScheduleConflictError": 7}
    assert len(catalog.list_sessions(instructor_id=studio.instructor.id)) == 1
