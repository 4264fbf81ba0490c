"""Storage of user accounts."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Boolean, Column, String
from sqlalchemy.engine import Connection

from .database import Database, Page, PaginationInput
from .product_categories import _record_table, _TableRepository

users_table = _record_table(
    "users",
    Column("name", String, nullable=False, default=""),
    Column("email", String, nullable=False, default=""),
    Column("phone_number", String, nullable=False, default=""),
    Column("password", String, nullable=False, default=""),
    Column("is_verified", Boolean, nullable=False, default=False),
)


@dataclass
class User:
    id: int = 0
    name: str = ""
    email: str = ""
    phone_number: str = ""
    password: str = ""
    is_verified: bool = False
    trace_parent: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None


class UserRepository(_TableRepository):
    """Reads and writes user accounts."""

    table = users_table
    entity_type = User
    label = "user"
    write_columns = ("name", "email", "phone_number", "password", "is_verified", "trace_parent")
    find_one_columns = ("id", "name", "email", "phone_number", "password", "is_verified")
    search_columns = ("name", "email", "id")

    def __init__(self, database: Database) -> None:
        super().__init__(database)

    def create(self, entity: User, conn: Connection | None) -> int:
        """Insert a user inside the given transaction and return its id."""
        return super().create(entity, conn)

    def update(self, entity: User, conn: Connection | None) -> None:
        """Overwrite the user with the entity's id; raise if none was changed."""
        super().update(entity, conn)

    def find_one(self, user_id: int = 0, email: str = "") -> User:
        """Find a user by id, by e-mail, or by both; unset criteria are ignored."""
        conditions = []
        if user_id != 0:
            conditions.append(self.table.c.id == user_id)
        if email != "":
            conditions.append(self.table.c.email == email)
        return self._find_one(*conditions)

    def find_all(self, search_keyword: str = "", pagination: PaginationInput | None = None) -> Page:
        """Return one page of users whose name, e-mail or id matches."""
        return super().find_all(search_keyword, pagination)