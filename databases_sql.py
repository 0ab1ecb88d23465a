# SQLite store. Creates tables if missing and provides the query helpers.

import logging
import sqlite3
from contextlib import closing, contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional, Union

from config import DB_PATH, SQLITE_TIMEOUT_SECONDS
from errors import (
    DuplicateReservation,
    HasActiveReservationsError,
    NotFoundError,
    StoreUnavailableError,
    StudioError,
    WriteConflict,
)
from models import Category, Reservation, Role, Session, User
from utils import parse_iso, to_iso

logger = logging.getLogger("booking_api.store")

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE,
    role TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS categories (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    description TEXT
);

CREATE TABLE IF NOT EXISTS sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    instructor_id INTEGER NOT NULL REFERENCES users(id),
    category_id INTEGER NOT NULL REFERENCES categories(id),
    starts_at TEXT NOT NULL,
    ends_at TEXT NOT NULL,
    capacity INTEGER NOT NULL CHECK (capacity >= 1),
    created_at TEXT NOT NULL,
    CHECK (ends_at > starts_at)
);

CREATE INDEX IF NOT EXISTS idx_sessions_instructor ON sessions(instructor_id, starts_at);

CREATE TABLE IF NOT EXISTS reservations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    member_id INTEGER NOT NULL REFERENCES users(id),
    session_id INTEGER NOT NULL REFERENCES sessions(id) ON DELETE RESTRICT,
    created_at TEXT NOT NULL,
    UNIQUE (member_id, session_id)
);

CREATE INDEX IF NOT EXISTS idx_reservations_session ON reservations(session_id);
"""

SESSION_COLUMNS = ("name", "instructor_id", "category_id", "starts_at", "ends_at", "capacity")


def _user(row) -> User:
    return User(id=row["id"], name=row["name"], email=row["email"], role=Role(row["role"]))


def _category(row) -> Category:
    return Category(id=row["id"], name=row["name"], description=row["description"])


def _session(row) -> Session:
    return Session(
        id=row["id"],
        name=row["name"],
        instructor_id=row["instructor_id"],
        category_id=row["category_id"],
        starts_at=parse_iso(row["starts_at"]),
        ends_at=parse_iso(row["ends_at"]),
        capacity=row["capacity"],
        created_at=parse_iso(row["created_at"]),
    )


def _reservation(row) -> Reservation:
    return Reservation(
        id=row["id"],
        member_id=row["member_id"],
        session_id=row["session_id"],
        created_at=parse_iso(row["created_at"]),
    )


def _store_error(exc: sqlite3.Error) -> Exception:
    message = str(exc).lower()
    if isinstance(exc, sqlite3.OperationalError) and ("locked" in message or "busy" in message):
        return WriteConflict(str(exc))
    logger.error("SQLite failure: %s", exc)
    return StoreUnavailableError()


def _rollback(conn: sqlite3.Connection) -> None:
    if conn.in_transaction:
        conn.execute("ROLLBACK")


class SqliteQueries:
    """Query helpers bound to one open connection."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    # ---------- Directory ----------
    def get_user(self, user_id: int) -> Optional[User]:
        row = self.conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return _user(row) if row else None

    def insert_user(self, name: str, email: str, role: Role) -> User:
        try:
            cur = self.conn.execute(
                "INSERT INTO users (name, email, role) VALUES (?, ?, ?)",
                (name, email, Role(role).value),
            )
        except sqlite3.IntegrityError as exc:
            raise StudioError("Email already exists", 409) from exc
        return User(id=cur.lastrowid, name=name, email=email, role=role)

    def find_user_by_email(self, email: str) -> Optional[User]:
        row = self.conn.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
        return _user(row) if row else None

    def find_category_by_name(self, name: str) -> Optional[Category]:
        row = self.conn.execute("SELECT * FROM categories WHERE name = ?", (name,)).fetchone()
        return _category(row) if row else None

    def get_category(self, category_id: int) -> Optional[Category]:
        row = self.conn.execute("SELECT * FROM categories WHERE id = ?", (category_id,)).fetchone()
        return _category(row) if row else None

    def insert_category(self, name: str, description: Optional[str]) -> Category:
        try:
            cur = self.conn.execute(
                "INSERT INTO categories (name, description) VALUES (?, ?)", (name, description)
            )
        except sqlite3.IntegrityError as exc:
            raise StudioError("Category already exists", 409) from exc
        return Category(id=cur.lastrowid, name=name, description=description)

    # ---------- Sessions ----------
    def get_session(self, session_id: int) -> Optional[Session]:
        row = self.conn.execute("SELECT * FROM sessions WHERE id = ?", (session_id,)).fetchone()
        return _session(row) if row else None

    def sessions_for_instructor(self, instructor_id: int) -> List[Session]:
        rows = self.conn.execute(
            "SELECT * FROM sessions WHERE instructor_id = ? ORDER BY starts_at", (instructor_id,)
        ).fetchall()
        return [_session(r) for r in rows]

    def list_sessions(
        self,
        instructor_id: Optional[int] = None,
        category_id: Optional[int] = None,
        starts_after: Optional[datetime] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Session]:
        clauses, params = [], []
        if instructor_id is not None:
            clauses.append("instructor_id = ?")
            params.append(instructor_id)
        if category_id is not None:
            clauses.append("category_id = ?")
            params.append(category_id)
        if starts_after is not None:
            clauses.append("starts_at > ?")
            params.append(to_iso(starts_after))
        sql = "SELECT * FROM sessions"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY starts_at, id LIMIT ? OFFSET ?"
        params.extend([-1 if limit is None else limit, offset])
        return [_session(r) for r in self.conn.execute(sql, params).fetchall()]

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
        cur = self.conn.execute(
            "INSERT INTO sessions (name, instructor_id, category_id, starts_at, ends_at, capacity, created_at)"
            " VALUES (?, ?, ?, ?, ?, ?, ?)",
            (name, instructor_id, category_id, to_iso(starts_at), to_iso(ends_at), capacity, to_iso(created_at)),
        )
        return self.get_session(cur.lastrowid)

    def update_session(self, session_id: int, fields: dict) -> Session:
        values = {k: v for k, v in fields.items() if k in SESSION_COLUMNS}
        if values:
            params = [to_iso(v) if isinstance(v, datetime) else v for v in values.values()]
            assignments = ", ".join(f"{column} = ?" for column in values)
            self.conn.execute(
                f"UPDATE sessions SET {assignments} WHERE id = ?", (*params, session_id)
            )
        session = self.get_session(session_id)
        if session is None:
            raise NotFoundError("Fitness class")
        return session

    def delete_session(self, session_id: int) -> bool:
        try:
            cur = self.conn.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
        except sqlite3.IntegrityError as exc:
            raise HasActiveReservationsError() from exc
        return cur.rowcount > 0

    # ---------- Reservations ----------
    def get_reservation(self, reservation_id: int) -> Optional[Reservation]:
        row = self.conn.execute(
            "SELECT * FROM reservations WHERE id = ?", (reservation_id,)
        ).fetchone()
        return _reservation(row) if row else None

    def find_reservation(self, member_id: int, session_id: int) -> Optional[Reservation]:
        row = self.conn.execute(
            "SELECT * FROM reservations WHERE member_id = ? AND session_id = ?",
            (member_id, session_id),
        ).fetchone()
        return _reservation(row) if row else None

    def count_reservations(self, session_id: int) -> int:
        row = self.conn.execute(
            "SELECT COUNT(*) FROM reservations WHERE session_id = ?", (session_id,)
        ).fetchone()
        return row[0]

    def insert_reservation(self, member_id: int, session_id: int, created_at: datetime) -> Reservation:
        try:
            cur = self.conn.execute(
                "INSERT INTO reservations (member_id, session_id, created_at) VALUES (?, ?, ?)",
                (member_id, session_id, to_iso(created_at)),
            )
        except sqlite3.IntegrityError as exc:
            if "UNIQUE" in str(exc):
                raise DuplicateReservation(str(exc)) from exc
            raise
        return Reservation(id=cur.lastrowid, member_id=member_id, session_id=session_id, created_at=created_at)

    def delete_reservation(self, member_id: int, session_id: int) -> bool:
        cur = self.conn.execute(
            "DELETE FROM reservations WHERE member_id = ? AND session_id = ?", (member_id, session_id)
        )
        return cur.rowcount > 0

    def delete_reservation_by_id(self, reservation_id: int) -> bool:
        cur = self.conn.execute("DELETE FROM reservations WHERE id = ?", (reservation_id,))
        return cur.rowcount > 0

    def list_reservations(
        self,
        member_id: Optional[int] = None,
        session_id: Optional[int] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Reservation]:
        clauses, params = [], []
        if member_id is not None:
            clauses.append("member_id = ?")
            params.append(member_id)
        if session_id is not None:
            clauses.append("session_id = ?")
            params.append(session_id)
        sql = "SELECT * FROM reservations"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?"
        params.extend([-1 if limit is None else limit, offset])
        return [_reservation(r) for r in self.conn.execute(sql, params).fetchall()]


class SqliteStore:
    def __init__(self, db_path: Union[str, Path] = DB_PATH, timeout: float = SQLITE_TIMEOUT_SECONDS):
        self.db_path = Path(db_path)
        self.timeout = timeout

    def get_conn(self) -> sqlite3.Connection:
        # Autocommit mode; transactions are opened explicitly with BEGIN IMMEDIATE
        conn = sqlite3.connect(
            str(self.db_path), timeout=self.timeout, check_same_thread=False, isolation_level=None
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def init(self) -> None:
        conn = self.get_conn()
        with closing(conn):
            conn.execute("PRAGMA journal_mode = WAL")
            conn.executescript(SCHEMA)

    @contextmanager
    def connect(self) -> Iterator[SqliteQueries]:
        conn = self.get_conn()
        with closing(conn):
            try:
                yield SqliteQueries(conn)
            except sqlite3.Error as exc:
                logger.error("SQLite failure: %s", exc)
                raise StoreUnavailableError() from exc

    @contextmanager
    def transaction(self) -> Iterator[SqliteQueries]:
        """
        BEGIN IMMEDIATE takes the database write lock up front, so the reads
        inside the block cannot be invalidated by another writer before COMMIT.
        """
        conn = self.get_conn()
        with closing(conn):
            try:
                conn.execute("BEGIN IMMEDIATE")
                yield SqliteQueries(conn)
                conn.execute("COMMIT")
            except sqlite3.Error as exc:
                _rollback(conn)
                raise _store_error(exc) from exc
            except BaseException:
                _rollback(conn)
                raise
