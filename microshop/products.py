"""Storage of products."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import BigInteger, Boolean, Column, Float, String
from sqlalchemy.engine import Connection

from .database import Database, Page, PaginationInput
from .product_categories import _record_table, _TableRepository

products_table = _record_table(
    "products",
    Column("name", String, nullable=False),
    Column("description", String, nullable=False, default=""),
    Column("price", Float, nullable=False, default=0.0),
    Column("stock", BigInteger, nullable=False, default=0),
    Column("sku", String, nullable=False, default=""),
    Column("is_active", Boolean, nullable=False, default=False),
)


@dataclass
class Product:
    id: int = 0
    category_id: int = 0
    name: str = ""
    description: str = ""
    price: float = 0.0
    stock: int = 0
    sku: str = ""
    is_active: bool = False
    trace_parent: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ProductRepository(_TableRepository):
    """Reads and writes products."""

    table = products_table
    entity_type = Product
    label = "product"
    write_columns = ("name", "description", "price", "stock", "sku", "is_active", "trace_parent")
    find_one_columns = ("id", *write_columns, "created_at", "updated_at")
    search_columns = ("name", "description", "sku")

    def __init__(self, database: Database) -> None:
        super().__init__(database)

    def create(self, entity: Product, conn: Connection | None) -> int:
        """Insert a product inside the given transaction and return its id."""
        return super().create(entity, conn)

    def update(self, entity: Product, conn: Connection | None) -> None:
        """Overwrite the product with the entity's id; raise if none was changed."""
        super().update(entity, conn)

    def find_one(self, product_id: int = 0, sku: str = "") -> Product:
        """Find a product by id, by SKU, or by both; unset criteria are ignored."""
        conditions = []
        if product_id != 0:
            conditions.append(self.table.c.id == product_id)
        if sku != "":
            conditions.append(self.table.c.sku == sku)
        return self._find_one(*conditions)

    def find_all(self, search_keyword: str = "", pagination: PaginationInput | None = None) -> Page:
        """Return one page of products whose name, description or SKU matches."""
        return super().find_all(search_keyword, pagination)