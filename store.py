"""
Persistence boundary used by the catalog and the admission controller.

A store hands out query handles: ``connect()`` for plain reads and single-row
writes, ``transaction()`` for work that must commit or roll back as one unit.
Both are context managers yielding an object with the ``StoreQueries`` methods.
"""
import logging
from datetime import datetime
from typing import Callable, ContextManager, List, Optional, Protocol, TypeVar

from errors import StoreUnavailableError, WriteConflict
from models import Category, Reservation, Role, Session, User

logger = logging.getLogger("booking_api.store")

T = TypeVar("T")


class StoreQueries(Protocol):
    # Directory
    def get_user(self, user_id: int) -> Optional[User]: ...

    def insert_user(self, name: str, email: str, role: Role) -> User: ...

    def find_user_by_email(self, email: str) -> Optional[User]: ...

    def get_category(self, category_id: int) -> Optional[Category]: ...

    def insert_category(self, name: str, description: Optional[str]) -> Category: ...

    def find_category_by_name(self, name: str) -> Optional[Category]: ...

    # Sessions
    def get_session(self, session_id: int) -> Optional[Session]: ...

    def sessions_for_instructor(self, instructor_id: int) -> List[Session]: ...

    def list_sessions(
        self,
        instructor_id: Optional[int] = None,
        category_id: Optional[int] = None,
        starts_after: Optional[datetime] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Session]: ...

    def insert_session(
        self,
        name: str,
        instructor_id: int,
        category_id: int,
        starts_at: datetime,
        ends_at: datetime,
        capacity: int,
        created_at: datetime,
    ) -> Session: ...

    def update_session(self, session_id: int, fields: dict) -> Session: ...

    def delete_session(self, session_id: int) -> bool: ...

    # Reservations
    def get_reservation(self, reservation_id: int) -> Optional[Reservation]: ...

    def find_reservation(self, member_id: int, session_id: int) -> Optional[Reservation]: ...

    def count_reservations(self, session_id: int) -> int: ...

    def insert_reservation(self, member_id: int, session_id: int, created_at: datetime) -> Reservation:
        """Raises DuplicateReservation when (member_id, session_id) already exists."""
        ...

    def delete_reservation(self, member_id: int, session_id: int) -> bool: ...

    def delete_reservation_by_id(self, reservation_id: int) -> bool: ...

    def list_reservations(
        self,
        member_id: Optional[int] = None,
        session_id: Optional[int] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Reservation]: ...


class Store(Protocol):
    def init(self) -> None: ...

    def connect(self) -> ContextManager[StoreQueries]: ...

    def transaction(self) -> ContextManager[StoreQueries]: ...


def retry_write(work: Callable[[], T], what: str) -> T:
    """Run ``work``; after a write conflict run it once more, then report the store as unavailable."""
    try:
        return work()
    except WriteConflict as exc:
        logger.warning("Write conflict during %s, retrying: %s", what, exc)
    try:
        return work()
    except WriteConflict as exc:
        logger.error("Giving up on %s: %s", what, exc)
        raise StoreUnavailableError() from exc
