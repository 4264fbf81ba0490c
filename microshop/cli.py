"""Command line entry point for running the services."""

from __future__ import annotations

import argparse
import logging
import os
import signal
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, TextIO

from dotenv import load_dotenv

from .database import Database, new_database
from .etl import EtlService, Message
from .observability import new_observability
from .product_api import create_app as create_product_app
from .product_categories import ProductCategoryRepository
from .product_usecase import ProductUsecase
from .products import ProductRepository
from .replicas import UserAddressReplicaRepository, UserReplicaRepository
from .server import start_server
from .user_addresses import UserAddressRepository
from .user_api import create_app as create_user_app
from .user_api import create_shipment_app
from .user_service import UserService
from .users import UserRepository

logger = logging.getLogger(__name__)

SHUTDOWN_TIMEOUT_SECONDS = 10.0
_POLL_SECONDS = 0.5


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="microshop", description="Multi-purpose CLI for app management"
    )
    services = parser.add_subparsers(dest="service", required=True)
    for name in ("product", "user", "shipment"):
        service = services.add_parser(name, help=f"{name} service")
        commands = service.add_subparsers(dest="command", required=True)
        commands.add_parser("rest-api", help="run rest api")
        if name == "shipment":
            etl = commands.add_parser("etl", help="run ETL")
            etl.add_argument(
                "--users", type=Path, required=True, help="JSON lines file of user change events"
            )
            etl.add_argument(
                "--addresses",
                type=Path,
                required=True,
                help="JSON lines file of user address change events",
            )
    return parser


@contextmanager
def _stop_on_signals(stop: threading.Event) -> Iterator[None]:
    if threading.current_thread() is not threading.main_thread():
        yield
        return
    wanted = (signal.SIGINT, signal.SIGTERM)
    previous = {sig: signal.getsignal(sig) for sig in wanted}
    for sig in wanted:
        signal.signal(sig, lambda *_: stop.set())
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def _wait(stop: threading.Event) -> None:
    while not stop.wait(_POLL_SECONDS):
        pass


def _close_within(deadline: float, *closers: Callable[[], None]) -> None:
    done = threading.Event()

    def run() -> None:
        try:
            for close in closers:
                close()
        except Exception:
            logger.exception("closing resources failed")
            return
        done.set()

    threading.Thread(target=run, daemon=True).start()
    if done.wait(max(0.0, deadline - time.monotonic())):
        logger.info("graceful shutdown completed")
    else:
        logger.warning("graceful shutdown timed out")


def _build_app(service: str, database: Database):
    if service == "product":
        return create_product_app(
            ProductUsecase(
                database, ProductRepository(database), ProductCategoryRepository(database)
            )
        )
    if service == "user":
        return create_user_app(
            UserService(database, UserRepository(database), UserAddressRepository(database))
        )
    return create_shipment_app()


def _run_rest_api(service: str) -> None:
    _, close_observability = new_observability()
    try:
        database = new_database()
    except Exception:
        close_observability()
        raise
    try:
        handle = start_server(_build_app(service, database), os.environ.get("APP_PORT", ""))
    except Exception:
        database.close()
        close_observability()
        raise

    stop = threading.Event()
    with _stop_on_signals(stop):
        _wait(stop)
    logger.info("graceful shutdown starting")
    deadline = time.monotonic() + SHUTDOWN_TIMEOUT_SECONDS
    handle.shutdown(timeout=SHUTDOWN_TIMEOUT_SECONDS)
    _close_within(deadline, database.close, close_observability)


class _JsonLinesReader:
    """Reads change events, one JSON document per line, as topic messages."""

    def __init__(self, path: Path, topic: str) -> None:
        self.topic = topic
        self.exhausted = threading.Event()
        self.committed_offset = -1
        self._next_offset = 0
        self._file: TextIO = open(path, encoding="utf-8")

    def __enter__(self) -> "_JsonLinesReader":
        return self

    def __exit__(self, *exc_info) -> None:
        self._file.close()

    def fetch_message(self) -> Message:
        for line in self._file:
            if not line.strip():
                continue
            message = Message(
                topic=self.topic, offset=self._next_offset, value=line.strip().encode()
            )
            self._next_offset += 1
            return message
        self.exhausted.set()
        return Message(topic=self.topic, offset=self._next_offset)

    def commit_messages(self, *messages: Message) -> None:
        for message in messages:
            self.committed_offset = max(self.committed_offset, message.offset)


class _AnyOf:
    def __init__(self, *events: threading.Event) -> None:
        self._events = events

    def is_set(self) -> bool:
        return any(event.is_set() for event in self._events)


def _run_etl(users_path: Path, addresses_path: Path) -> None:
    tracer, close_observability = new_observability()
    try:
        database = new_database()
    except Exception:
        close_observability()
        raise

    service = EtlService(
        database,
        UserReplicaRepository(database),
        UserAddressReplicaRepository(database),
        tracer,
    )
    stop = threading.Event()

    def work() -> None:
        steps = (
            (users_path, "users", service.etl_users, "error etl user"),
            (addresses_path, "user_addresses", service.etl_user_addresses, "error etl user address"),
        )
        try:
            for path, topic, consume, failure in steps:
                try:
                    with _JsonLinesReader(path, topic) as reader:
                        consume(reader, _AnyOf(stop, reader.exhausted))
                except Exception:
                    logger.exception(failure)
                    return
        finally:
            stop.set()

    worker = threading.Thread(target=work, name="etl", daemon=True)
    with _stop_on_signals(stop):
        worker.start()
        _wait(stop)
    logger.info("graceful shutdown starting")
    deadline = time.monotonic() + SHUTDOWN_TIMEOUT_SECONDS
    worker.join(max(0.0, deadline - time.monotonic()))
    _close_within(deadline, database.close, close_observability)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    load_dotenv(".env")
    if args.command == "etl":
        _run_etl(args.users, args.addresses)
    else:
        _run_rest_api(args.service)
    return 0