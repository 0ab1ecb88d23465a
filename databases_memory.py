# In-process store with the same query helpers as the SQLite one. Used by tests
# and for running the API without a database file.

import itertools
from contextlib import contextmanager
from datetime import datetime
from threading import RLock
from typing import Dict, Iterator, List, Optional, Tuple

from errors import DuplicateReservation, HasActiveReservationsError, NotFoundError, StudioError
from models import Category, Reservation, Role, Session, User
from utils import to_utc

SESSION_FIELDS = ("name", "instructor_id", "category_id", "starts_at", "ends_at", "capacity")


class MemoryStore:
    def __init__(self) -> None:
        self._lock = RLock()
        self._ids = {name: itertools.count(1) for name in ("users", "categories", "sessions", "reservations")}
        self._users: Dict[int, User] = {}
        self._categories: Dict[int, Category] = {}
        self._sessions: Dict[int, Session] = {}
        self._reservations: Dict[int, Reservation] = {}
        self._reservation_keys: Dict[Tuple[int, int], int] = {}

    def init(self) -> None:
        pass

    @contextmanager
    def connect(self) -> Iterator["MemoryStore"]:
        yield self

    @contextmanager
    def transaction(self) -> Iterator["MemoryStore"]:
        # One writer at a time, like BEGIN IMMEDIATE; no rollback
        with self._lock:
            yield self

    # ---------- Directory ----------
    def get_user(self, user_id: int) -> Optional[User]:
        with self._lock:
            return self._users.get(user_id)

    def insert_user(self, name: str, email: str, role: Role) -> User:
        with self._lock:
            if any(u.email == email for u in self._users.values()):
                raise StudioError("Email already exists", 409)
            user = User(id=next(self._ids["users"]), name=name, email=email, role=role)
            self._users[user.id] = user
            return user

    def find_user_by_email(self, email: str) -> Optional[User]:
        with self._lock:
            return next((u for u in self._users.values() if u.email == email), None)

    def find_category_by_name(self, name: str) -> Optional[Category]:
        with self._lock:
            return next((c for c in self._categories.values() if c.name == name), None)

    def get_category(self, category_id: int) -> Optional[Category]:
        with self._lock:
            return self._categories.get(category_id)

    def insert_category(self, name: str, description: Optional[str]) -> Category:
        with self._lock:
            if any(c.name == name for c in self._categories.values()):
                raise StudioError("Category already exists", 409)
            category = Category(id=next(self._ids["categories"]), name=name, description=description)
            self._categories[category.id] = category
            return category

    # ---------- Sessions ----------
    def get_session(self, session_id: int) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(session_id)

    def sessions_for_instructor(self, instructor_id: int) -> List[Session]:
        with self._lock:
            found = [s for s in self._sessions.values() if s.instructor_id == instructor_id]
        return sorted(found, key=lambda s: s.starts_at)

    def list_sessions(
        self,
        instructor_id: Optional[int] = None,
        category_id: Optional[int] = None,
        starts_after: Optional[datetime] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Session]:
        with self._lock:
            sessions = list(self._sessions.values())
        if instructor_id is not None:
            sessions = [s for s in sessions if s.instructor_id == instructor_id]
        if category_id is not None:
            sessions = [s for s in sessions if s.category_id == category_id]
        if starts_after is not None:
            sessions = [s for s in sessions if s.starts_at > starts_after]
        sessions.sort(key=lambda s: (s.starts_at, s.id))
        end = None if limit is None else offset + limit
        return sessions[offset:end]

    def insert_session(
        self,
        name: str,
        instructor_id: int,
        category_id: int,
        starts_at: datetime,
        ends_at: datetime,
        capacity: int,
        created_at: datetime,
    ) -> Session:
        with self._lock:
            session = Session(
                id=next(self._ids["sessions"]),
                name=name,
                instructor_id=instructor_id,
                category_id=category_id,
                starts_at=to_utc(starts_at),
                ends_at=to_utc(ends_at),
                capacity=capacity,
                created_at=to_utc(created_at),
            )
            self._sessions[session.id] = session
            return session

    def update_session(self, session_id: int, fields: dict) -> Session:
        values = {k: v for k, v in fields.items() if k in SESSION_FIELDS}
        for key in ("starts_at", "ends_at"):
            if key in values:
                values[key] = to_utc(values[key])
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise NotFoundError("Fitness class")
            session = session.model_copy(update=values)
            self._sessions[session_id] = session
            return session

    def delete_session(self, session_id: int) -> bool:
        with self._lock:
            if session_id not in self._sessions:
                return False
            if any(r.session_id == session_id for r in self._reservations.values()):
                raise HasActiveReservationsError()
            del self._sessions[session_id]
            return True

    # ---------- Reservations ----------
    def get_reservation(self, reservation_id: int) -> Optional[Reservation]:
        with self._lock:
            return self._reservations.get(reservation_id)

    def find_reservation(self, member_id: int, session_id: int) -> Optional[Reservation]:
        with self._lock:
            reservation_id = self._reservation_keys.get((member_id, session_id))
            return self._reservations.get(reservation_id) if reservation_id else None

    def count_reservations(self, session_id: int) -> int:
        with self._lock:
            return sum(1 for r in self._reservations.values() if r.session_id == session_id)

    def insert_reservation(self, member_id: int, session_id: int, created_at: datetime) -> Reservation:
        with self._lock:
            key = (member_id, session_id)
            if key in self._reservation_keys:
                raise DuplicateReservation(f"member {member_id} already holds session {session_id}")
            reservation = Reservation(
                id=next(self._ids["reservations"]),
                member_id=member_id,
                session_id=session_id,
                created_at=created_at,
            )
            self._reservations[reservation.id] = reservation
            self._reservation_keys[key] = reservation.id
            return reservation

    def delete_reservation(self, member_id: int, session_id: int) -> bool:
        with self._lock:
            reservation_id = self._reservation_keys.pop((member_id, session_id), None)
            if reservation_id is None:
                return False
            del self._reservations[reservation_id]
            return True

    def delete_reservation_by_id(self, reservation_id: int) -> bool:
        with self._lock:
            reservation = self._reservations.pop(reservation_id, None)
            if reservation is None:
                return False
            del self._reservation_keys[(reservation.member_id, reservation.session_id)]
            return True

    def list_reservations(
        self,
        member_id: Optional[int] = None,
        session_id: Optional[int] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Reservation]:
        with self._lock:
            reservations = list(self._reservations.values())
        if member_id is not None:
            reservations = [r for r in reservations if r.member_id == member_id]
        if session_id is not None:
            reservations = [r for r in reservations if r.session_id == session_id]
        reservations.sort(key=lambda r: (r.created_at, r.id), reverse=True)
        end = None if limit is None else offset + limit
        return reservations[offset:end]
