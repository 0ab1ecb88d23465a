"""
User and category lookups used by the catalog and the admission controller.
"""
import logging
from typing import Optional

from errors import InvalidRoleError, NotFoundError
from models import Category, Role, User
from store import Store, StoreQueries

logger = logging.getLogger("booking_api.directory")


class Directory:
    def __init__(self, store: Store):
        self.store = store

    def get_user(self, user_id: int) -> Optional[User]:
        with self.store.connect() as q:
            return q.get_user(user_id)

    def get_category(self, category_id: int) -> Optional[Category]:
        with self.store.connect() as q:
            return q.get_category(category_id)

    def find_user_by_email(self, email: str) -> Optional[User]:
        with self.store.connect() as q:
            return q.find_user_by_email(email)

    def register_user(self, name: str, email: str, role: Role = Role.MEMBER) -> User:
        with self.store.connect() as q:
            user = q.insert_user(name, email, role)
        logger.info("Registered %s %s (id=%s)", user.role.value, user.email, user.id)
        return user

    def register_category(self, name: str, description: Optional[str] = None) -> Category:
        with self.store.connect() as q:
            return q.insert_category(name, description)


def require_user(queries: StoreQueries, user_id: int, what: str = "User") -> User:
    user = queries.get_user(user_id)
    if user is None:
        raise NotFoundError(what)
    return user


def require_instructor(queries: StoreQueries, user_id: int) -> User:
    user = require_user(queries, user_id, "Instructor")
    if user.role != Role.INSTRUCTOR:
        raise InvalidRoleError()
    return user


def require_category(queries: StoreQueries, category_id: int) -> Category:
    category = queries.get_category(category_id)
    if category is None:
        raise NotFoundError("Category")
    return category
