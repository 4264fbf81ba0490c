import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from microshop.database import (
    Database,
    NoRowFoundError,
    NoUpdateRowError,
    PaginationInput,
    metadata,
)
from microshop.products import Product, ProductRepository


@pytest.fixture
def repo():
    database = Database(create_engine("sqlite://", poolclass=StaticPool))
    metadata.create_all(database.engine)
    yield ProductRepository(database)
    database.close()


def _create(repo, **fields):
    with repo.database.transaction() as conn:
        return repo.create(Product(**fields), conn)


def test_create_then_find_by_id(repo):
    new_id = _create(
        repo, name="Pen", description="Blue ink", price=9.5, stock=40,
        sku="PEN-1", is_active=True, trace_parent="tp",
    )
    found = repo.find_one(product_id=new_id)
    assert (found.id, found.name, found.description) == (new_id, "Pen", "Blue ink")
    assert (found.price, found.stock, found.sku) == (9.5, 40, "PEN-1")
    assert found.is_active is True
    assert found.trace_parent == "tp"


def test_find_by_sku(repo):
    _create(repo, name="Pen", sku="PEN-1")
    other_id = _create(repo, name="Ink", sku="INK-2")
    assert repo.find_one(sku="INK-2").id == other_id


@pytest.mark.parametrize("with_mismatched_sku", [True, False])
def test_find_one_without_match_raises(repo, with_mismatched_sku):
    pen_id = _create(repo, name="Pen", sku="PEN-1")
    _create(repo, name="Ink", sku="INK-2")
    criteria = {"product_id": pen_id, "sku": "INK-2"} if with_mismatched_sku else {"product_id": 777}
    with pytest.raises(NoRowFoundError):
        repo.find_one(**criteria)


@pytest.mark.parametrize("method", ["create", "update"])
def test_write_without_connection_raises(repo, method):
    with pytest.raises(ValueError, match=f"failed to {method} product,"):
        getattr(repo, method)(Product(id=1, name="x"), None)


def test_update_changes_row(repo):
    new_id = _create(repo, name="Pen", price=1.0, stock=1, sku="PEN-1")
    with repo.database.transaction() as conn:
        repo.update(
            Product(id=new_id, name="Pen XL", price=2.5, stock=3, sku="PEN-XL", is_active=True),
            conn,
        )
    found = repo.find_one(product_id=new_id)
    assert (found.name, found.price, found.stock, found.sku, found.is_active) == (
        "Pen XL", 2.5, 3, "PEN-XL", True,
    )


def test_update_missing_raises(repo):
    with pytest.raises(NoUpdateRowError):
        with repo.database.transaction() as conn:
            repo.update(Product(id=404, name="x"), conn)


def test_find_all_matches_sku_and_name(repo):
    _create(repo, name="Notebook", sku="NB-1")
    _create(repo, name="Pencil", sku="PC-note")
    _create(repo, name="Eraser", sku="ER-1")
    page = repo.find_all("NOTE", PaginationInput(page=1, page_size=10))
    assert sorted(p.name for p in page.items) == ["Notebook", "Pencil"]
    assert page.pagination.total_data == 2


def test_find_all_second_page(repo):
    for name in "abc":
        _create(repo, name=name, sku=name)
    page = repo.find_all(pagination=PaginationInput(page=2, page_size=2))
    assert [p.name for p in page.items] == ["c"]
    assert page.pagination.total_data == 3