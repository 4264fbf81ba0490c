"""Storage of product categories, and the table-backed repository base shared by the stores."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, ClassVar, Mapping

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Integer,
    String,
    Table,
    cast,
    func,
    insert,
    or_,
    select,
    update,
)
from sqlalchemy.engine import Connection

from .database import (
    Database,
    NoRowFoundError,
    NoUpdateRowError,
    Page,
    PaginationInput,
    metadata,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _record_table(name: str, *columns: Column) -> Table:
    """Build a table with an id key, the given columns and the tracing/audit columns."""
    return Table(
        name,
        metadata,
        Column("id", BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True),
        *columns,
        Column("trace_parent", String, nullable=False, default=""),
        Column("created_at", DateTime(timezone=True), nullable=False, default=_utcnow),
        Column("updated_at", DateTime(timezone=True), nullable=False, default=_utcnow),
    )


class _TableRepository:
    """Create, update and search rows of one table mapped onto a dataclass."""

    table: ClassVar[Table]
    entity_type: ClassVar[type]
    label: ClassVar[str]
    create_label: ClassVar[str | None] = None
    write_columns: ClassVar[tuple[str, ...]]
    find_one_columns: ClassVar[tuple[str, ...]]
    find_all_columns: ClassVar[tuple[str, ...] | None] = None
    search_columns: ClassVar[tuple[str, ...]] = ()

    def __init__(self, database: Database) -> None:
        self.database = database

    @staticmethod
    def _require(conn: Connection | None, action: str, label: str) -> None:
        if conn is None:
            raise ValueError(f"failed to {action} {label}, transaction connection is None")

    def _values(self, entity: Any) -> dict[str, Any]:
        return {name: getattr(entity, name) for name in self.write_columns}

    def _entity(self, row: Mapping[str, Any]) -> Any:
        return self.entity_type(**dict(row))

    def _select(self, names: tuple[str, ...]):
        return select(*(self.table.c[name] for name in names))

    def _searchable(self, name: str):
        column = self.table.c[name]
        return column if isinstance(column.type, String) else cast(column, String)

    def create(self, entity: Any, conn: Connection | None) -> int:
        """Insert a row inside the given transaction and return its id."""
        self._require(conn, "create", self.create_label or self.label)
        result = conn.execute(insert(self.table).values(**self._values(entity)))
        return result.inserted_primary_key[0]

    def update(self, entity: Any, conn: Connection | None) -> None:
        """Overwrite the row with the entity's id; raise if no row was changed."""
        self._require(conn, "update", self.label)
        result = conn.execute(
            update(self.table)
            .where(self.table.c.id == entity.id)
            .values(**self._values(entity), updated_at=_utcnow())
        )
        if result.rowcount == 0:
            raise NoUpdateRowError("no row updated")

    def _find_one(self, *conditions: Any) -> Any:
        query = self._select(self.find_one_columns)
        for condition in conditions:
            query = query.where(condition)
        with self.database.connect() as conn:
            row = conn.execute(query).mappings().first()
        if row is None:
            raise NoRowFoundError("no row found")
        return self._entity(row)

    def find_all(self, search_keyword: str = "", pagination: PaginationInput | None = None) -> Page:
        """Return one page of rows where any searchable column matches the keyword."""
        pagination = pagination or PaginationInput()
        find_query = self._select(self.find_all_columns or self.find_one_columns)
        count_query = select(func.count()).select_from(self.table)
        if search_keyword:
            pattern = f"%{search_keyword}%"
            condition = or_(*(self._searchable(name).ilike(pattern) for name in self.search_columns))
            find_query = find_query.where(condition)
            count_query = count_query.where(condition)

        page = self.database.query_pagination(count_query, find_query, pagination)
        return Page(items=[self._entity(row) for row in page.items], pagination=page.pagination)


product_categories_table = _record_table(
    "product_categories",
    Column("name", String, nullable=False),
    Column("description", String, nullable=False, default=""),
)


@dataclass
class ProductCategory:
    id: int = 0
    name: str = ""
    description: str = ""
    trace_parent: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ProductCategoryRepository(_TableRepository):
    """Reads and writes product categories."""

    table = product_categories_table
    entity_type = ProductCategory
    label = "product category"
    write_columns = ("name", "description", "trace_parent")
    find_one_columns = ("id", "name", "description", "trace_parent", "created_at", "updated_at")
    search_columns = ("name", "description")

    def __init__(self, database: Database) -> None:
        super().__init__(database)

    def create(self, entity: ProductCategory, conn: Connection | None) -> int:
        """Insert a category inside the given transaction and return its id."""
        return super().create(entity, conn)

    def update(self, entity: ProductCategory, conn: Connection | None) -> None:
        """Overwrite the category with the entity's id; raise if none was changed."""
        super().update(entity, conn)

    def find_one(self, category_id: int) -> ProductCategory:
        return self._find_one(self.table.c.id == category_id)

    def find_all(self, search_keyword: str = "", pagination: PaginationInput | None = None) -> Page:
        """Return one page of categories whose name or description matches."""
        return super().find_all(search_keyword, pagination)