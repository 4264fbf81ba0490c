"""Database access: engine setup, transactions and paginated queries."""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping

from sqlalchemy import MetaData, create_engine
from sqlalchemy.engine import Connection, Engine, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.sql import Select

logger = logging.getLogger(__name__)

metadata = MetaData()

_CONNECT_TIMEOUT_SECONDS = 5


class NoRowFoundError(LookupError):
    """Raised when a query that expects a row finds none."""


class NoUpdateRowError(LookupError):
    """Raised when an update statement touches no row."""


class NoDeleteRowError(LookupError):
    """Raised when a delete statement removes no row."""


@dataclass(frozen=True)
class PaginationInput:
    """Requested page, numbered from 1, and its size."""

    page: int = 1
    page_size: int = 10

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValueError(f"page must be at least 1, got {self.page}")
        if self.page_size < 1:
            raise ValueError(f"page_size must be at least 1, got {self.page_size}")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


@dataclass(frozen=True)
class PaginationOutput:
    """Where a page sits among all matching rows."""

    page: int
    page_size: int
    total_data: int
    total_page: int


@dataclass
class Page:
    """One page of results together with its pagination details."""

    items: list[Any] = field(default_factory=list)
    pagination: PaginationOutput | None = None


class Database:
    """A pool of connections to one database."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """Yield a connection inside a read-write transaction.

        The transaction commits when the block ends and rolls back if it raises.
        """
        with self.engine.connect() as conn:
            if self.engine.dialect.name == "postgresql":
                conn.execution_options(isolation_level="READ COMMITTED")
            with conn.begin():
                yield conn

    @contextmanager
    def connect(self) -> Iterator[Connection]:
        """Yield a connection for reading."""
        with self.engine.connect() as conn:
            yield conn

    def query_pagination(
        self, count_query: Select, find_query: Select, pagination: PaginationInput
    ) -> Page:
        """Run a count query and one page of a find query."""
        paged = find_query.limit(pagination.page_size).offset(pagination.offset)
        with self.connect() as conn:
            total = conn.execute(count_query).scalar_one()
            rows = [dict(row) for row in conn.execute(paged).mappings()]
        total_page = -(-total // pagination.page_size) if total else 0
        return Page(
            items=rows,
            pagination=PaginationOutput(
                page=pagination.page,
                page_size=pagination.page_size,
                total_data=total,
                total_page=total_page,
            ),
        )

    def close(self) -> None:
        """Close every pooled connection."""
        self.engine.dispose()


def new_database(env: Mapping[str, str] | None = None) -> Database:
    """Create a database pool from the DATABASE_URI setting."""
    env = os.environ if env is None else env
    uri = env.get("DATABASE_URI", "")
    if not uri:
        raise ValueError("DATABASE_URI is not set")

    try:
        url = make_url(uri)
    except ArgumentError as exc:
        raise ValueError(f"parse connection config: {exc}") from exc

    options: dict[str, Any] = {"pool_pre_ping": True}
    if url.get_backend_name() == "postgresql":
        options["connect_args"] = {"connect_timeout": _CONNECT_TIMEOUT_SECONDS}

    try:
        engine = create_engine(url, **options)
    except (SQLAlchemyError, ImportError) as exc:
        raise ConnectionError(f"connect to database: {exc}") from exc

    logger.info("database pool initiated")
    return Database(engine)