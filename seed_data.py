"""
Seed a demo studio: one instructor, two members, three categories and three
sessions (Yoga, Zumba, HIIT).
- Adds missing records only, so it is safe to run on every start.
Times are given in studio time and stored as UTC.
"""

import logging
from datetime import datetime, timedelta

from catalog import SessionCatalog
from databases_sql import SqliteStore
from errors import StudioError
from locks import SessionLocks
from models import Role
from store import Store
from utils import STUDIO_TZ

logger = logging.getLogger("booking_api.seed")

USERS = [
    ("Asha Instructor", "instructor@example.com", Role.INSTRUCTOR),
    ("Ravi Member", "ravi@example.com", Role.MEMBER),
    ("Meera Member", "meera@example.com", Role.MEMBER),
]

CATEGORIES = [
    ("Yoga", "Breath, balance and flexibility"),
    ("Dance", "Cardio set to music"),
    ("Strength", "High intensity and weights"),
]


def _ensure_user(q, name, email, role):
    return q.find_user_by_email(email) or q.insert_user(name, email, role)


def seed_studio(store: Store) -> None:
    with store.connect() as q:
        instructor = _ensure_user(q, *USERS[0])
        for user in USERS[1:]:
            _ensure_user(q, *user)
        categories = {
            name: q.find_category_by_name(name) or q.insert_category(name, description)
            for name, description in CATEGORIES
        }
        existing_names = {s.name for s in q.sessions_for_instructor(instructor.id)}

    now_local = datetime.now(STUDIO_TZ)
    tomorrow = now_local + timedelta(days=1)
    day_after = now_local + timedelta(days=2)
    sessions = [
        ("Yoga", "Yoga", tomorrow.replace(hour=9, minute=0, second=0, microsecond=0), 15),
        ("Zumba", "Dance", tomorrow.replace(hour=17, minute=0, second=0, microsecond=0), 15),
        ("HIIT", "Strength", day_after.replace(hour=7, minute=0, second=0, microsecond=0), 10),
    ]

    catalog = SessionCatalog(store, SessionLocks())
    for name, category_name, local_start, capacity in sessions:
        if name in existing_names:
            continue
        try:
            catalog.create_session(
                instructor.id,
                categories[category_name].id,
                name,
                local_start,
                local_start + timedelta(hours=1),
                capacity,
            )
        except StudioError as exc:
            logger.warning("Skipped seeding %s: %s", name, exc.message)
            continue
        logger.info("Seeded: %s at %s", name, local_start.strftime("%d %b %Y, %I:%M %p %Z"))


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    sqlite_store = SqliteStore()
    sqlite_store.init()
    seed_studio(sqlite_store)
