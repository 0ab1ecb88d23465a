"""
Instructor schedule conflict detection.

Sessions occupy half-open intervals ``[starts_at, ends_at)``: a class ending at
10:00 and another starting at 10:00 do not conflict.
"""
from datetime import datetime
from typing import List, Optional

from models import Session
from store import StoreQueries


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and b_start < a_end


def find_conflicts(
    queries: StoreQueries,
    instructor_id: int,
    starts_at: datetime,
    ends_at: datetime,
    exclude_session_id: Optional[int] = None,
) -> List[Session]:
    """Return the instructor's sessions overlapping the candidate interval."""
    return [
        session
        for session in queries.sessions_for_instructor(instructor_id)
        if session.id != exclude_session_id
        and intervals_overlap(starts_at, ends_at, session.starts_at, session.ends_at)
    ]


def has_conflict(
    queries: StoreQueries,
    instructor_id: int,
    starts_at: datetime,
    ends_at: datetime,
    exclude_session_id: Optional[int] = None,
) -> bool:
    return bool(find_conflicts(queries, instructor_id, starts_at, ends_at, exclude_session_id))
