"""User registration and authentication services."""

from __future__ import annotations

from dataclasses import dataclass

import bcrypt

from .database import Database, NoRowFoundError
from .observability import extract_traceparent
from .user_addresses import UserAddressRepository
from .users import User, UserRepository

BCRYPT_COST = 10
_BCRYPT_MAX_BYTES = 72


class BadRequestError(ValueError):
    """Raised when a request cannot be served because of what it asks for."""


@dataclass(frozen=True)
class RegisterInput:
    """Details of an account to register."""

    name: str = ""
    email: str = ""
    phone_number: str = ""
    password: str = ""


class UserService:
    """Manages user accounts."""

    def __init__(
        self,
        database: Database,
        users: UserRepository,
        addresses: UserAddressRepository,
    ) -> None:
        self.database = database
        self.users = users
        self.addresses = addresses

    def register(self, data: RegisterInput) -> int:
        """Register a new account and return its id.

        Raises BadRequestError when the e-mail address is already taken.
        """
        try:
            existing = self.users.find_one(email=data.email)
        except NoRowFoundError:
            existing = None
        if existing is not None and existing.id != 0:
            raise BadRequestError("email is registered")

        secret_bytes = data.password.encode()
        if len(secret_bytes) > _BCRYPT_MAX_BYTES:
            raise ValueError("bcrypt: password length exceeds 72 bytes")
        hashed = bcrypt.hashpw(secret_bytes, bcrypt.gensalt(rounds=BCRYPT_COST)).decode()

        with self.database.transaction() as conn:
            return self.users.create(
                User(
                    name=data.name,
                    email=data.email,
                    phone_number=data.phone_number,
                    password=hashed,
                    trace_parent=extract_traceparent(),
                ),
                conn,
            )


class AuthService:
    """Authentication of registered users."""

    def __init__(self, users: UserRepository) -> None:
        self.users = users