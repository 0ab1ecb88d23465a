from contextlib import contextmanager

import pytest

from admission import AdmissionController
from conftest import NOW
from databases_memory import MemoryStore
from directory import Directory
from errors import (
    AlreadyBookedError,
    NotFoundError,
    SessionFullError,
    StoreUnavailableError,
    TooSoonToBookError,
    WriteConflict,
)
from models import Role


def test_reserve_takes_a_seat(admission, studio, make_session):
    session = make_session(capacity=3)
    member = studio.members[0]

    reservation = admission.reserve(member.id, session.id)

    assert reservation.member_id == member.id
    assert reservation.session_id == session.id
    assert reservation.created_at == NOW
    assert admission.seats_available(session.id) == 2


@pytest.mark.parametrize("start_hours", [0.5, 1])
def test_reserve_inside_cutoff_is_too_soon(admission, studio, make_session, start_hours):
    session = make_session(start_hours=start_hours)

    with pytest.raises(TooSoonToBookError):
        admission.reserve(studio.members[0].id, session.id)
    assert admission.seats_available(session.id) == session.capacity


def test_reserve_just_outside_cutoff(admission, studio, make_session):
    session = make_session(start_hours=1.5)
    assert admission.reserve(studio.members[0].id, session.id).session_id == session.id


def test_cutoff_is_evaluated_at_call_time(admission, studio, make_session, clock):
    session = make_session(start_hours=3)
    admission.reserve(studio.members[0].id, session.id)

    clock.advance(hours=2, minutes=30)

    with pytest.raises(TooSoonToBookError):
        admission.reserve(studio.members[1].id, session.id)


def test_reserving_twice_is_already_booked(admission, studio, make_session):
    session = make_session()
    member = studio.members[0]
    first = admission.reserve(member.id, session.id)

    with pytest.raises(AlreadyBookedError):
        admission.reserve(member.id, session.id)

    assert admission.list_session_reservations(session.id) == [first]


def test_full_session_rejects(admission, studio, make_session):
    session = make_session(capacity=1)
    admission.reserve(studio.members[0].id, session.id)

    with pytest.raises(SessionFullError):
        admission.reserve(studio.members[1].id, session.id)
    assert admission.seats_available(session.id) == 0


def test_unknown_member_or_session(admission, studio, make_session):
    session = make_session()

    with pytest.raises(NotFoundError, match="Member"):
        admission.reserve(9999, session.id)
    with pytest.raises(NotFoundError, match="Fitness class"):
        admission.reserve(studio.members[0].id, 9999)


def test_cancel_frees_the_seat_for_someone_else(admission, studio, make_session):
    session = make_session(capacity=2)
    a, b = studio.members[0], studio.members[1]
    admission.reserve(a.id, session.id)

    admission.cancel(a.id, session.id)

    assert admission.seats_available(session.id) == 2
    assert admission.reserve(b.id, session.id).member_id == b.id


def test_cancel_frees_exactly_one_seat(admission, studio, make_session):
    session = make_session(capacity=2)
    m = studio.members
    admission.reserve(m[0].id, session.id)
    admission.reserve(m[1].id, session.id)

    admission.cancel(m[0].id, session.id)

    admission.reserve(m[2].id, session.id)
    with pytest.raises(SessionFullError):
        admission.reserve(m[3].id, session.id)


def test_cancel_is_not_repeatable(admission, studio, make_session):
    session = make_session()
    member = studio.members[0]
    admission.reserve(member.id, session.id)
    admission.cancel(member.id, session.id)

    with pytest.raises(NotFoundError):
        admission.cancel(member.id, session.id)


def test_cancel_ignores_cutoff(admission, studio, make_session, clock):
    session = make_session(start_hours=3)
    member = studio.members[0]
    admission.reserve(member.id, session.id)
    clock.advance(hours=2, minutes=50)

    admission.cancel(member.id, session.id)
    assert admission.seats_available(session.id) == session.capacity


def test_cancel_by_reservation_id(admission, studio, make_session):
    session = make_session()
    reservation = admission.reserve(studio.members[0].id, session.id)

    admission.cancel_reservation(reservation.id)

    assert admission.list_session_reservations(session.id) == []
    with pytest.raises(NotFoundError):
        admission.cancel_reservation(reservation.id)


def test_member_reservations_newest_first(admission, studio, make_session, clock):
    morning = make_session(start_hours=3, name="Morning")
    evening = make_session(start_hours=9, name="Evening")
    member = studio.members[0]
    admission.reserve(member.id, morning.id)
    clock.advance(minutes=5)
    admission.reserve(member.id, evening.id)

    reservations = admission.list_member_reservations(member.id)
    assert [r.session_id for r in reservations] == [evening.id, morning.id]
    assert [r.session_id for r in admission.list_member_reservations(member.id, page=2, limit=1)] == [morning.id]

    with pytest.raises(NotFoundError):
        admission.list_member_reservations(9999)
    with pytest.raises(NotFoundError):
        admission.list_session_reservations(9999)


# ---------- Store failure handling ----------
class FlakyStore(MemoryStore):
    """Raises WriteConflict on the first ``failures`` transactions."""

    def __init__(self, failures):
        super().__init__()
        self.failures = failures
        self.attempts = 0

    @contextmanager
    def transaction(self):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise WriteConflict("database is locked")
        yield self


class BlindStore(MemoryStore):
    """Never sees existing reservations, so only the uniqueness constraint can stop duplicates."""

    def find_reservation(self, member_id, session_id):
        return None


def _seed(store, clock):
    directory = Directory(store)
    instructor = directory.register_user("Asha", "asha@example.com", Role.INSTRUCTOR)
    member = directory.register_user("Ravi", "ravi@example.com")
    category = directory.register_category("Yoga")
    with store.connect() as q:
        session = q.insert_session(
            "Flow", instructor.id, category.id, clock().replace(hour=12), clock().replace(hour=13), 5, clock()
        )
    return member, session


def test_write_conflict_is_retried_once(locks, clock):
    store = FlakyStore(failures=1)
    member, session = _seed(store, clock)
    admission = AdmissionController(store, locks, clock)

    reservation = admission.reserve(member.id, session.id)

    assert reservation.session_id == session.id
    assert store.attempts == 2


def test_repeated_write_conflict_surfaces_store_unavailable(locks, clock):
    store = FlakyStore(failures=2)
    member, session = _seed(store, clock)
    admission = AdmissionController(store, locks, clock)

    with pytest.raises(StoreUnavailableError):
        admission.reserve(member.id, session.id)
    assert store.attempts == 2
    assert admission.seats_available(session.id) == 5


def test_uniqueness_constraint_backs_up_duplicate_check(locks, clock):
    store = BlindStore()
    member, session = _seed(store, clock)
    admission = AdmissionController(store, locks, clock)
    admission.reserve(member.id, session.id)

    with pytest.raises(AlreadyBookedError):
        admission.reserve(member.id, session.id)
    assert admission.seats_available(session.id) == 4
