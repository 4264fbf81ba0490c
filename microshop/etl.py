"""Replication of user change events into the local store."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Mapping, Protocol

from .database import Database, NoRowFoundError
from .observability import Span, Tracer
from .replicas import (
    UserAddressReplica,
    UserAddressReplicaRepository,
    UserReplica,
    UserReplicaRepository,
)

logger = logging.getLogger(__name__)

_FRACTION = re.compile(r"\.(\d+)")


class DecodeError(ValueError):
    """Raised when a message body is not a valid change event."""


@dataclass
class Message:
    """One message read from a topic."""

    topic: str = ""
    partition: int = 0
    offset: int = 0
    value: bytes = b""
    headers: Mapping[str, str] = field(default_factory=dict)


@dataclass
class ChangeEvent:
    """A flattened row change: operation, source table and row fields.

    Field names in ``data`` are lower case with underscores removed, so
    ``phone_number`` and ``phoneNumber`` both become ``phonenumber``.
    """

    op: str = ""
    table: str = ""
    schema_name: str = ""
    data: dict[str, Any] = field(default_factory=dict)


class _Reader(Protocol):
    def fetch_message(self) -> Message: ...

    def commit_messages(self, *messages: Message) -> None: ...


class _Stop(Protocol):
    def is_set(self) -> bool: ...


def _normalise(key: str) -> str:
    return key.replace("_", "").lower()


def _text(value: Any, what: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise DecodeError(f"{what} must be a string")
    return value


def parse_change_event(value: bytes | str) -> ChangeEvent:
    """Decode a change event with an unwrapped new record state."""
    try:
        document = json.loads(value)
    except (ValueError, TypeError) as exc:
        raise DecodeError(f"invalid change event: {exc}") from exc
    if not isinstance(document, dict):
        raise DecodeError("change event must be a JSON object")

    schema = document.get("schema") or {}
    payload = document.get("payload") or {}
    if not isinstance(schema, dict) or not isinstance(payload, dict):
        raise DecodeError("schema and payload must be JSON objects")

    return ChangeEvent(
        op=_text(payload.get("__op"), "__op"),
        table=_text(payload.get("__table"), "__table"),
        schema_name=_text(schema.get("name"), "schema name"),
        data={_normalise(k): v for k, v in payload.items() if not k.startswith("__")},
    )


def _int(data: Mapping[str, Any], key: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise DecodeError(f"{key} must be an integer")
    return value


def _str(data: Mapping[str, Any], key: str) -> str:
    return _text(data.get(key), key)


def _bool(data: Mapping[str, Any], key: str) -> bool:
    value = data.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise DecodeError(f"{key} must be a boolean")
    return value


def _time(data: Mapping[str, Any], key: str) -> datetime | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise DecodeError(f"{key} must be a timestamp string")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    try:
        return datetime.fromisoformat(text)
    except ValueError as exc:
        raise DecodeError(f"{key} is not a valid timestamp: {value!r}") from exc


def _user_from(event: ChangeEvent) -> UserReplica:
    data = event.data
    return UserReplica(
        id=_int(data, "id"),
        name=_str(data, "name"),
        email=_str(data, "email"),
        phone_number=_str(data, "phonenumber"),
        password=_str(data, "password"),
        is_verified=_bool(data, "isverified"),
        trace_parent=_str(data, "traceparent"),
        created_at=_time(data, "createdat"),
        updated_at=_time(data, "updatedat"),
    )


def _address_from(event: ChangeEvent) -> UserAddressReplica:
    data = event.data
    return UserAddressReplica(
        id=_int(data, "id"),
        user_id=_int(data, "userid"),
        full_address=_str(data, "fulladdress"),
        trace_parent=_str(data, "traceparent"),
        created_at=_time(data, "createdat"),
        updated_at=_time(data, "updatedat"),
    )


class EtlService:
    """Applies user and address change events to the local replicas."""

    def __init__(
        self,
        database: Database,
        users: UserReplicaRepository,
        addresses: UserAddressReplicaRepository,
        tracer: Tracer,
    ) -> None:
        self.database = database
        self.users = users
        self.addresses = addresses
        self.tracer = tracer

    def _start_span(self, message: Message, event: ChangeEvent) -> Span:
        span = self.tracer.start_span(
            "debezium.message.info", message.headers.get("traceparent", "")
        )
        span.set_attributes(
            {
                "debezium.operation": event.op,
                "debezium.schema": event.schema_name,
                "kafka.topic": message.topic,
                "kafka.partition": str(message.partition),
                "kafka.offset": message.offset,
                "debezium.source.table": event.table,
            }
        )
        return span

    def handle_user_event(self, message: Message, event: ChangeEvent) -> Span:
        """Apply one user change in a transaction; return the span that traced it."""
        span = self._start_span(message, event)
        with span, self.database.transaction() as conn:
            if event.op in ("c", "u"):
                self.users.upsert(_user_from(event), conn)
            elif event.op == "d":
                self.users.delete(conn, _int(event.data, "id"))
            else:
                logger.warning("unsupported operation %s", event.op)
        return span

    def handle_user_address_event(self, message: Message, event: ChangeEvent) -> Span:
        """Apply one address change in a transaction; return the span that traced it."""
        span = self._start_span(message, event)
        with span, self.database.transaction() as conn:
            if event.op in ("c", "u"):
                address = _address_from(event)
                try:
                    owner = self.users.find_one(user_id=address.user_id)
                    existing = owner.id > 0
                except NoRowFoundError:
                    existing = False
                span.set_attributes({"user.existing": existing})
                self.addresses.upsert(address, conn)
            elif event.op == "d":
                self.addresses.delete(conn, _int(event.data, "id"))
            else:
                logger.warning("unsupported operation %s", event.op)
        return span

    def etl_users(self, reader: _Reader, stop: _Stop) -> None:
        """Consume user changes until ``stop`` is set."""
        self._consume(reader, stop, self.handle_user_event)

    def etl_user_addresses(self, reader: _Reader, stop: _Stop) -> None:
        """Consume address changes until ``stop`` is set."""
        self._consume(reader, stop, self.handle_user_address_event)

    def _consume(
        self,
        reader: _Reader,
        stop: _Stop,
        handle: Callable[[Message, ChangeEvent], Span],
    ) -> None:
        while True:
            message = reader.fetch_message()
            if stop.is_set():
                logger.info("shipment service received shutdown signal")
                return
            try:
                event = parse_change_event(message.value)
            except DecodeError as exc:
                logger.debug("skipping undecodable message: %s", exc)
                continue

            try:
                handle(message, event)
            except Exception:
                logger.exception("failed %s operation", event.op)
                continue

            try:
                reader.commit_messages(message)
            except Exception:
                logger.exception("failed commit %s operation", event.op)