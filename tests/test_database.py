import pytest
from sqlalchemy import Column, Integer, MetaData, String, Table, create_engine, func, insert, select
from sqlalchemy.pool import StaticPool

from microshop.database import Database, PaginationInput, new_database

_test_metadata = MetaData()
items = Table(
    "items",
    _test_metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String),
)


@pytest.fixture
def db():
    database = Database(create_engine("sqlite://", poolclass=StaticPool))
    _test_metadata.create_all(database.engine)
    yield database
    database.close()


def _count(db):
    with db.connect() as conn:
        return conn.execute(select(func.count()).select_from(items)).scalar_one()


def test_pagination_input_rejects_non_positive_page():
    with pytest.raises(ValueError):
        PaginationInput(page=0, page_size=10)


def test_pagination_input_rejects_non_positive_size():
    with pytest.raises(ValueError):
        PaginationInput(page=1, page_size=0)


def test_new_database_requires_uri():
    with pytest.raises(ValueError, match="DATABASE_URI is not set"):
        new_database({})


def test_new_database_rejects_malformed_uri():
    with pytest.raises(ValueError, match="parse connection config"):
        new_database({"DATABASE_URI": "not a uri"})


def test_new_database_unknown_dialect():
    with pytest.raises(ConnectionError, match="connect to database"):
        new_database({"DATABASE_URI": "nosuchdialect://localhost/db"})


def test_new_database_sqlite():
    database = new_database({"DATABASE_URI": "sqlite://"})
    try:
        assert database.engine.dialect.name == "sqlite"
    finally:
        database.close()


def test_transaction_commits(db):
    names = ["a", "b"]
    with db.transaction() as conn:
        for name in names:
            conn.execute(insert(items).values(name=name))
    assert _count(db) == len(names)


def test_transaction_rolls_back_on_error(db):
    with pytest.raises(RuntimeError):
        with db.transaction() as conn:
            conn.execute(insert(items).values(name="a"))
            raise RuntimeError("boom")
    assert _count(db) == 0


def test_query_pagination_last_page(db):
    names = ["a", "b", "c", "d", "e"]
    with db.transaction() as conn:
        for name in names:
            conn.execute(insert(items).values(name=name))
    page = db.query_pagination(
        select(func.count()).select_from(items),
        select(items.c.name).order_by(items.c.id),
        PaginationInput(page=3, page_size=2),
    )
    assert [row["name"] for row in page.items] == names[4:]
    assert page.pagination.total_data == len(names)
    assert page.pagination.total_page == 3
    assert page.pagination.page == 3


def test_query_pagination_empty(db):
    page = db.query_pagination(
        select(func.count()).select_from(items),
        select(items.c.name),
        PaginationInput(),
    )
    assert page.items == []
    assert page.pagination.total_page == page.pagination.total_data == 0