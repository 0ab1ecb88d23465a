"""
Session catalog: creates, edits and removes fitness sessions while keeping
every instructor's schedule free of overlaps.
"""
import logging
from datetime import datetime
from typing import Callable, List, Optional, Union

from conflicts import find_conflicts
from directory import require_category, require_instructor
from errors import (
    HasActiveReservationsError,
    InvalidCapacityError,
    InvalidIntervalError,
    NotFoundError,
    ScheduleConflictError,
)
from locks import SessionLocks
from models import Session, SessionPatch
from store import Store, StoreQueries, retry_write
from utils import clamp_pagination, to_utc, utc_now

logger = logging.getLogger("booking_api.catalog")


def validate_interval(starts_at: datetime, ends_at: datetime) -> None:
    if not ends_at > starts_at:
        raise InvalidIntervalError()


def validate_capacity(capacity: int) -> None:
    if capacity < 1:
        raise InvalidCapacityError()


def _check_conflicts(
    q: StoreQueries,
    instructor_id: int,
    starts_at: datetime,
    ends_at: datetime,
    exclude_session_id: Optional[int] = None,
) -> None:
    conflicts = find_conflicts(q, instructor_id, starts_at, ends_at, exclude_session_id)
    if conflicts:
        logger.warning(
            "Instructor %s already teaches %s between %s and %s",
            instructor_id, [c.id for c in conflicts], starts_at, ends_at,
        )
        raise ScheduleConflictError(
            [{"session_id": c.id, "starts_at": c.starts_at, "ends_at": c.ends_at} for c in conflicts]
        )


class SessionCatalog:
    def __init__(self, store: Store, locks: SessionLocks, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.locks = locks
        self.clock = clock

    def create_session(
        self,
        instructor_id: int,
        category_id: int,
        name: str,
        starts_at: datetime,
        ends_at: datetime,
        capacity: int,
    ) -> Session:
        starts_at, ends_at = to_utc(starts_at), to_utc(ends_at)
        validate_interval(starts_at, ends_at)
        validate_capacity(capacity)

        def insert() -> Session:
            with self.store.transaction() as q:
                require_instructor(q, instructor_id)
                require_category(q, category_id)
                _check_conflicts(q, instructor_id, starts_at, ends_at)
                return q.insert_session(
                    name, instructor_id, category_id, starts_at, ends_at, capacity, self.clock()
                )

        session = retry_write(insert, f"creation of session '{name}'")
        logger.info(
            "Created session %s '%s' for instructor %s (%s - %s, capacity %s)",
            session.id, name, instructor_id, starts_at, ends_at, capacity,
        )
        return session

    def update_session(self, session_id: int, patch: Union[SessionPatch, dict]) -> Session:
        if isinstance(patch, SessionPatch):
            patch = patch.model_dump(exclude_unset=True)
        changes = {k: v for k, v in patch.items() if v is not None}
        for key in ("starts_at", "ends_at"):
            if key in changes:
                changes[key] = to_utc(changes[key])

        with self.locks.hold(session_id):
            session = retry_write(
                lambda: self._apply_changes(session_id, changes), f"update of session {session_id}"
            )
        logger.info("Updated session %s: %s", session_id, sorted(changes))
        return session

    def _apply_changes(self, session_id: int, changes: dict) -> Session:
        with self.store.transaction() as q:
            current = q.get_session(session_id)
            if current is None:
                raise NotFoundError("Fitness class")

            instructor_id = changes.get("instructor_id", current.instructor_id)
            starts_at = changes.get("starts_at", current.starts_at)
            ends_at = changes.get("ends_at", current.ends_at)
            validate_interval(starts_at, ends_at)

            if "capacity" in changes:
                validate_capacity(changes["capacity"])
                booked = q.count_reservations(session_id)
                if changes["capacity"] < booked:
                    raise InvalidCapacityError(
                        f"Capacity cannot be lower than the {booked} existing bookings"
                    )
            if instructor_id != current.instructor_id:
                require_instructor(q, instructor_id)
            if changes.get("category_id", current.category_id) != current.category_id:
                require_category(q, changes["category_id"])

            if (instructor_id, starts_at, ends_at) != (current.instructor_id, current.starts_at, current.ends_at):
                _check_conflicts(q, instructor_id, starts_at, ends_at, exclude_session_id=session_id)

            return q.update_session(session_id, changes)

    def delete_session(self, session_id: int) -> None:
        def remove() -> None:
            with self.store.transaction() as q:
                if q.get_session(session_id) is None:
                    raise NotFoundError("Fitness class")
                if q.count_reservations(session_id) > 0:
                    raise HasActiveReservationsError()
                q.delete_session(session_id)

        with self.locks.hold(session_id):
            retry_write(remove, f"deletion of session {session_id}")
        logger.info("Deleted session %s", session_id)

    def get_session(self, session_id: int) -> Session:
        with self.store.connect() as q:
            session = q.get_session(session_id)
        if session is None:
            raise NotFoundError("Fitness class")
        return session

    def list_sessions(
        self,
        instructor_id: Optional[int] = None,
        category_id: Optional[int] = None,
        upcoming_only: bool = False,
        page: int = 1,
        limit: int = 10,
    ) -> List[Session]:
        page, limit = clamp_pagination(page, limit)
        starts_after = self.clock() if upcoming_only else None
        with self.store.connect() as q:
            return q.list_sessions(
                instructor_id=instructor_id,
                category_id=category_id,
                starts_after=starts_after,
                offset=(page - 1) * limit,
                limit=limit,
            )
