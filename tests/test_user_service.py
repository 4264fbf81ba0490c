import bcrypt
import pytest
from sqlalchemy import create_engine

from microshop.database import Database, metadata
from microshop.user_addresses import UserAddressRepository
from microshop.user_service import AuthService, BadRequestError, RegisterInput, UserService
from microshop.users import UserRepository


@pytest.fixture
def database(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'users.db'}")
    metadata.create_all(engine)
    db = Database(engine)
    yield db
    db.close()


@pytest.fixture
def service(database):
    return UserService(database, UserRepository(database), UserAddressRepository(database))


def test_register_stores_user_with_hashed_password(service):
    password = "password"
    user_id = service.register(
        RegisterInput(name="Alice", email="alice@example.com", phone_number="555", password=password)
    )
    stored = service.users.find_one(user_id=user_id)
    assert stored.name == "Alice"
    assert stored.email == "alice@example.com"
    assert stored.phone_number == "555"
    assert stored.password != password
    assert bcrypt.checkpw(password.encode(), stored.password.encode())


def test_register_rejects_taken_email(service):
    password = "password"
    service.register(RegisterInput(name="Alice", email="alice@example.com", password=password))
    with pytest.raises(BadRequestError, match="registered"):
        service.register(RegisterInput(name="Other", email="alice@example.com", password=password))
    assert service.users.find_all().pagination.total_data == 1


def test_register_allows_different_emails(service):
    password = "password"
    first = service.register(RegisterInput(name="A", email="a@example.com", password=password))
    second = service.register(RegisterInput(name="B", email="b@example.com", password=password))
    assert first != second
    assert service.users.find_one(email="b@example.com").id == second


def test_register_rejects_overlong_password(service):
    password = "password" * 10
    with pytest.raises(ValueError, match="72 bytes"):
        service.register(RegisterInput(name="Long", email="long@example.com", password=password))
    assert service.users.find_all().pagination.total_data == 0


class _FailingUsers:
    def __init__(self, real):
        self.real = real

    def find_one(self, user_id=0, email=""):
        return self.real.find_one(user_id=user_id, email=email)

    def create(self, entity, conn):
        raise LookupError("insert failed")


def test_register_propagates_storage_errors(database):
    real = UserRepository(database)
    service = UserService(database, _FailingUsers(real), UserAddressRepository(database))
    password = "password"
    with pytest.raises(LookupError, match="insert failed"):
        service.register(RegisterInput(name="A", email="a@example.com", password=password))


def test_auth_service_keeps_repository(database):
    users = UserRepository(database)
    assert AuthService(users).users is users