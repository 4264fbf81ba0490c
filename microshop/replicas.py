"""Local copies of users and addresses kept in step with change events."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping

from sqlalchemy import String, Table, cast, delete, func, insert, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Connection

from .database import (
    Database,
    NoDeleteRowError,
    NoRowFoundError,
    NoUpdateRowError,
    Page,
    PaginationInput,
)
from .user_addresses import user_addresses_table
from .users import users_table


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


_dialect_inserts = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


def _upsert(conn: Connection, table: Table, values: dict[str, Any]) -> int:
    """Insert a row or, when its id exists, overwrite it."""
    dialect_insert = _dialect_inserts.get(conn.dialect.name)
    if dialect_insert is not None:
        stmt = dialect_insert(table).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.id],
            set_={key: stmt.excluded[key] for key in values if key != "id"},
        )
        conn.execute(stmt)
    else:
        changes = {key: value for key, value in values.items() if key != "id"}
        result = conn.execute(update(table).where(table.c.id == values["id"]).values(**changes))
        if result.rowcount == 0:
            conn.execute(insert(table).values(**values))
    return values["id"]


def _delete(conn: Connection, table: Table, row_id: int) -> None:
    result = conn.execute(delete(table).where(table.c.id == row_id))
    if result.rowcount == 0:
        raise NoDeleteRowError("no row deleted")


@dataclass
class UserReplica:
    id: int = 0
    name: str = ""
    email: str = ""
    phone_number: str = ""
    password: str = ""
    is_verified: bool = False
    trace_parent: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def _from_row(cls, row: Mapping[str, Any]) -> "UserReplica":
        return cls(**dict(row))


@dataclass
class UserAddressReplica:
    id: int = 0
    user_id: int = 0
    full_address: str = ""
    trace_parent: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def _from_row(cls, row: Mapping[str, Any]) -> "UserAddressReplica":
        return cls(**dict(row))


_u = users_table
_USER_COLUMNS = (_u.c.id, _u.c.name, _u.c.email, _u.c.phone_number, _u.c.password, _u.c.is_verified)


class UserReplicaRepository:
    """Reads and writes the local copy of users."""

    def __init__(self, database: Database) -> None:
        self.database = database

    def upsert(self, entity: UserReplica, conn: Connection | None) -> int:
        """Insert the user with its own id, or overwrite the stored copy."""
        if conn is None:
            raise ValueError("failed to create user, transaction connection is None")
        return _upsert(
            conn,
            _u,
            {
                "id": entity.id,
                "name": entity.name,
                "email": entity.email,
                "phone_number": entity.phone_number,
                "password": entity.password,
                "is_verified": entity.is_verified,
                "trace_parent": entity.trace_parent,
                "created_at": entity.created_at or _utcnow(),
                "updated_at": entity.updated_at or _utcnow(),
            },
        )

    def update(self, entity: UserReplica, conn: Connection | None) -> None:
        if conn is None:
            raise ValueError("failed to update user, transaction connection is None")
        result = conn.execute(
            update(_u)
            .where(_u.c.id == entity.id)
            .values(
                name=entity.name,
                email=entity.email,
                phone_number=entity.phone_number,
                password=entity.password,
                is_verified=entity.is_verified,
                trace_parent=entity.trace_parent,
                updated_at=_utcnow(),
            )
        )
        if result.rowcount == 0:
            raise NoUpdateRowError("no row updated")

    def delete(self, conn: Connection | None, user_id: int) -> None:
        if conn is None:
            raise ValueError("failed to delete user, transaction connection is None")
        _delete(conn, _u, user_id)

    def find_one(self, user_id: int = 0, email: str = "") -> UserReplica:
        """Find a user by id, by e-mail, or by both; unset criteria are ignored."""
        query = select(*_USER_COLUMNS)
        if user_id != 0:
            query = query.where(_u.c.id == user_id)
        if email != "":
            query = query.where(_u.c.email == email)
        with self.database.connect() as conn:
            row = conn.execute(query).mappings().first()
        if row is None:
            raise NoRowFoundError("no row found")
        return UserReplica._from_row(row)

    def find_all(
        self, search_keyword: str = "", pagination: PaginationInput | None = None
    ) -> Page:
        """Return one page of users whose name, e-mail or id matches."""
        pagination = pagination or PaginationInput()
        find_query = select(*_USER_COLUMNS)
        count_query = select(func.count()).select_from(_u)
        if search_keyword:
            pattern = f"%{search_keyword}%"
            condition = or_(
                _u.c.name.ilike(pattern),
                _u.c.email.ilike(pattern),
                cast(_u.c.id, String).ilike(pattern),
            )
            find_query = find_query.where(condition)
            count_query = count_query.where(condition)

        page = self.database.query_pagination(count_query, find_query, pagination)
        return Page(
            items=[UserReplica._from_row(row) for row in page.items],
            pagination=page.pagination,
        )


_a = user_addresses_table


class UserAddressReplicaRepository:
    """Reads and writes the local copy of user addresses."""

    def __init__(self, database: Database) -> None:
        self.database = database

    def upsert(self, entity: UserAddressReplica, conn: Connection | None) -> int:
        """Insert the address with its own id, or overwrite the stored copy."""
        if conn is None:
            raise ValueError("failed to create user, transaction connection is None")
        return _upsert(
            conn,
            _a,
            {
                "id": entity.id,
                "user_id": entity.user_id,
                "full_address": entity.full_address,
                "trace_parent": entity.trace_parent,
                "created_at": entity.created_at or _utcnow(),
                "updated_at": entity.updated_at or _utcnow(),
            },
        )

    def update(self, entity: UserAddressReplica, conn: Connection | None) -> None:
        if conn is None:
            raise ValueError("failed to update user address, transaction connection is None")
        result = conn.execute(
            update(_a)
            .where(_a.c.id == entity.id)
            .values(
                user_id=entity.user_id,
                full_address=entity.full_address,
                trace_parent=entity.trace_parent,
                updated_at=_utcnow(),
            )
        )
        if result.rowcount == 0:
            raise NoUpdateRowError("no row updated")

    def delete(self, conn: Connection | None, address_id: int) -> None:
        if conn is None:
            raise ValueError("failed to delete user, transaction connection is None")
        _delete(conn, _a, address_id)

    def find_one(self, address_id: int) -> UserAddressReplica:
        query = select(_a.c.id, _a.c.user_id, _a.c.full_address).where(_a.c.id == address_id)
        with self.database.connect() as conn:
            row = conn.execute(query).mappings().first()
        if row is None:
            raise NoRowFoundError("no row found")
        return UserAddressReplica._from_row(row)

    def find_all(
        self, search_keyword: str = "", pagination: PaginationInput | None = None
    ) -> Page:
        """Return one page of addresses whose text or owner id matches."""
        pagination = pagination or PaginationInput()
        find_query = select(_a.c.user_id, _a.c.full_address, _a.c.id)
        count_query = select(func.count()).select_from(_a)
        if search_keyword:
            pattern = f"%{search_keyword}%"
            condition = or_(
                _a.c.full_address.ilike(pattern),
                cast(_a.c.user_id, String).ilike(pattern),
            )
            find_query = find_query.where(condition)
            count_query = count_query.where(condition)

        page = self.database.query_pagination(count_query, find_query, pagination)
        return Page(
            items=[UserAddressReplica._from_row(row) for row in page.items],
            pagination=page.pagination,
        )