import pytest
from sqlalchemy import create_engine

from microshop.database import (
    Database,
    NoRowFoundError,
    NoUpdateRowError,
    PaginationInput,
    metadata,
)
from microshop.users import User, UserRepository


@pytest.fixture
def repo(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'users.db'}")
    metadata.create_all(engine)
    database = Database(engine)
    yield UserRepository(database)
    database.close()


def _make_user(name="alice", email="alice@example.com", user_id=0):
    password = "password"
    return User(
        id=user_id,
        name=name,
        email=email,
        phone_number="0",
        password=password,
        is_verified=True,
        trace_parent="00-trace",
    )


def _create(repo, user):
    with repo.database.transaction() as conn:
        return repo.create(user, conn)


def test_create_and_find_by_id(repo):
    user = _make_user()
    user_id = _create(repo, user)
    found = repo.find_one(user_id=user_id)
    assert (found.id, found.name, found.email) == (user_id, user.name, user.email)
    assert (found.phone_number, found.password) == (user.phone_number, user.password)
    assert found.is_verified is True
    # trace_parent is not part of the selected columns
    assert found.trace_parent == ""


def test_find_by_email(repo):
    first = _create(repo, _make_user("alice", "alice@example.com"))
    second = _create(repo, _make_user("bob", "bob@example.com"))
    assert repo.find_one(email="bob@example.com").id == second
    assert repo.find_one(email="alice@example.com").id == first


@pytest.mark.parametrize("mismatched_email", [True, False])
def test_find_one_without_match_raises(repo, mismatched_email):
    user_id = _create(repo, _make_user())
    criteria = {"user_id": user_id, "email": "other@example.com"} if mismatched_email else {"user_id": 999}
    with pytest.raises(NoRowFoundError):
        repo.find_one(**criteria)


@pytest.mark.parametrize("method", ["create", "update"])
def test_write_without_connection_raises(repo, method):
    with pytest.raises(ValueError, match=f"failed to {method} user,"):
        getattr(repo, method)(_make_user(), None)


def test_update_changes_row(repo):
    user_id = _create(repo, _make_user())
    changed = _make_user("carol", "carol@example.com", user_id=user_id)
    changed.is_verified = False
    with repo.database.transaction() as conn:
        repo.update(changed, conn)
    found = repo.find_one(user_id=user_id)
    assert (found.name, found.email, found.is_verified) == ("carol", "carol@example.com", False)


def test_update_missing_raises(repo):
    with pytest.raises(NoUpdateRowError):
        with repo.database.transaction() as conn:
            repo.update(_make_user(user_id=12345), conn)


def test_failed_transaction_rolls_back(repo):
    with pytest.raises(RuntimeError):
        with repo.database.transaction() as conn:
            repo.create(_make_user(), conn)
            raise RuntimeError("boom")
    page = repo.find_all()
    assert page.items == []
    assert page.pagination.total_data == 0


def test_find_all_filters_by_keyword(repo):
    for n in range(3):
        _create(repo, _make_user(f"alice{n}", f"alice{n}@example.com"))
    _create(repo, _make_user("bob", "bob@example.com"))
    page = repo.find_all("ALICE", PaginationInput(page=1, page_size=2))
    assert page.pagination.total_data == 3
    assert len(page.items) == 2
    assert all(item.name.startswith("alice") for item in page.items)
    assert page.pagination.total_page * 2 >= 3


def test_find_all_matches_id_text(repo):
    user_id = _create(repo, _make_user())
    page = repo.find_all(str(user_id))
    assert user_id in [item.id for item in page.items]