"""
Admission controller: owns the reservation lifecycle.

A reservation is admitted only when all of these hold at the moment of the
attempt:

* the member and the session exist,
* the session starts more than ``cutoff`` (one hour by default) from now,
* the member does not already hold a seat in the session,
* fewer than ``capacity`` seats are taken.

The checks and the insert run under the session's lock and inside one store
transaction, so two members racing for the last seat cannot both get it.
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, List

from config import BOOKING_CUTOFF
from directory import require_user
from errors import (
    AlreadyBookedError,
    DuplicateReservation,
    NotFoundError,
    SessionFullError,
    TooSoonToBookError,
)
from locks import SessionLocks
from models import Reservation
from store import Store, retry_write
from utils import clamp_pagination, utc_now

logger = logging.getLogger("booking_api.admission")


class AdmissionController:
    def __init__(
        self,
        store: Store,
        locks: SessionLocks,
        clock: Callable[[], datetime] = utc_now,
        cutoff: timedelta = BOOKING_CUTOFF,
    ):
        self.store = store
        self.locks = locks
        self.clock = clock
        self.cutoff = cutoff

    def reserve(self, member_id: int, session_id: int) -> Reservation:
        with self.locks.hold(session_id):
            return retry_write(
                lambda: self._admit(member_id, session_id),
                f"admission of member {member_id} to session {session_id}",
            )

    def _admit(self, member_id: int, session_id: int) -> Reservation:
        with self.store.transaction() as q:
            require_user(q, member_id, "Member")
            session = q.get_session(session_id)
            if session is None:
                raise NotFoundError("Fitness class")

            now = self.clock()
            if session.starts_at <= now + self.cutoff:
                raise TooSoonToBookError()

            if q.find_reservation(member_id, session_id) is not None:
                raise AlreadyBookedError()

            booked = q.count_reservations(session_id)
            if booked >= session.capacity:
                logger.info("Session %s is full (%s/%s), rejecting member %s",
                            session_id, booked, session.capacity, member_id)
                raise SessionFullError()

            try:
                reservation = q.insert_reservation(member_id, session_id, now)
            except DuplicateReservation as exc:
                raise AlreadyBookedError() from exc

        logger.info("Member %s booked session %s (%s/%s)",
                    member_id, session_id, booked + 1, session.capacity)
        return reservation

    def cancel(self, member_id: int, session_id: int) -> None:
        with self.store.connect() as q:
            if not q.delete_reservation(member_id, session_id):
                raise NotFoundError("Booking")
        logger.info("Member %s cancelled session %s", member_id, session_id)

    def cancel_reservation(self, reservation_id: int) -> None:
        with self.store.connect() as q:
            if not q.delete_reservation_by_id(reservation_id):
                raise NotFoundError("Booking")
        logger.info("Cancelled reservation %s", reservation_id)

    def seats_available(self, session_id: int) -> int:
        with self.store.connect() as q:
            session = q.get_session(session_id)
            if session is None:
                raise NotFoundError("Fitness class")
            return max(0, session.capacity - q.count_reservations(session_id))

    def list_member_reservations(self, member_id: int, page: int = 1, limit: int = 10) -> List[Reservation]:
        page, limit = clamp_pagination(page, limit)
        with self.store.connect() as q:
            require_user(q, member_id, "Member")
            return q.list_reservations(member_id=member_id, offset=(page - 1) * limit, limit=limit)

    def list_session_reservations(self, session_id: int, page: int = 1, limit: int = 10) -> List[Reservation]:
        page, limit = clamp_pagination(page, limit)
        with self.store.connect() as q:
            if q.get_session(session_id) is None:
                raise NotFoundError("Fitness class")
            return q.list_reservations(session_id=session_id, offset=(page - 1) * limit, limit=limit)
