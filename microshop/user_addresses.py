"""Storage of user addresses."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import BigInteger, Column, String
from sqlalchemy.engine import Connection

from .database import Database, Page, PaginationInput
from .product_categories import _record_table, _TableRepository

user_addresses_table = _record_table(
    "user_addresses",
    Column("user_id", BigInteger, nullable=False, default=0),
    Column("full_address", String, nullable=False, default=""),
)


@dataclass
class UserAddress:
    id: int = 0
    user_id: int = 0
    full_address: str = ""
    trace_parent: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None


class UserAddressRepository(_TableRepository):
    """Reads and writes user addresses."""

    table = user_addresses_table
    entity_type = UserAddress
    label = "user address"
    create_label = "user"
    write_columns = ("user_id", "full_address", "trace_parent")
    find_one_columns = ("id", "user_id", "full_address")
    find_all_columns = ("user_id", "full_address", "id")
    search_columns = ("full_address", "user_id")

    def __init__(self, database: Database) -> None:
        super().__init__(database)

    def create(self, entity: UserAddress, conn: Connection | None) -> int:
        """Insert an address inside the given transaction and return its id."""
        return super().create(entity, conn)

    def update(self, entity: UserAddress, conn: Connection | None) -> None:
        """Overwrite the address with the entity's id; raise if none was changed."""
        super().update(entity, conn)

    def find_one(self, address_id: int) -> UserAddress:
        return self._find_one(self.table.c.id == address_id)

    def find_all(self, search_keyword: str = "", pagination: PaginationInput | None = None) -> Page:
        """Return one page of addresses whose text or user id matches."""
        return super().find_all(search_keyword, pagination)