import json
from pathlib import Path

import pytest
from sqlalchemy import create_engine

from microshop.cli import build_parser, main
from microshop.database import NoRowFoundError, metadata, new_database
from microshop.replicas import UserAddressReplicaRepository, UserReplicaRepository


def test_parser_reads_etl_arguments():
    args = build_parser().parse_args(
        ["shipment", "etl", "--users", "u.jsonl", "--addresses", "a.jsonl"]
    )
    assert (args.service, args.command) == ("shipment", "etl")
    assert args.users == Path("u.jsonl")
    assert args.addresses == Path("a.jsonl")


def test_parser_reads_rest_api_command():
    args = build_parser().parse_args(["user", "rest-api"])
    assert (args.service, args.command) == ("user", "rest-api")


@pytest.mark.parametrize(
    "argv",
    [[], ["billing", "rest-api"], ["product", "etl"], ["shipment", "etl", "--users", "u"]],
)
def test_parser_rejects_invalid_commands(argv):
    with pytest.raises(SystemExit):
        build_parser().parse_args(argv)


def test_rest_api_requires_database_uri(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("DATABASE_URI", raising=False)
    with pytest.raises(ValueError, match="DATABASE_URI is not set"):
        main(["product", "rest-api"])


def _event(op, **fields):
    payload = dict(fields, __op=op, __table="t")
    return json.dumps({"schema": {"name": "event"}, "payload": payload})


def test_etl_replicates_events_from_files(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    uri = f"sqlite:///{tmp_path / 'shipment.db'}"
    monkeypatch.setenv("DATABASE_URI", uri)
    engine = create_engine(uri)
    metadata.create_all(engine)
    engine.dispose()

    users_file = tmp_path / "users.jsonl"
    users_file.write_text(
        "\n".join(
            [
                _event("c", id=5, name="Ann", email="ann@example.com"),
                "not json",
                _event("c", id=6, name="Bob", email="bob@example.com"),
                _event("d", id=6),
            ]
        )
        + "\n"
    )
    addresses_file = tmp_path / "addresses.jsonl"
    addresses_file.write_text(_event("c", id=9, user_id=5, full_address="1 Main St") + "\n")

    assert main(
        ["shipment", "etl", "--users", str(users_file), "--addresses", str(addresses_file)]
    ) == 0

    database = new_database({"DATABASE_URI": uri})
    try:
        users = UserReplicaRepository(database)
        assert users.find_one(user_id=5).name == "Ann"
        with pytest.raises(NoRowFoundError):
            users.find_one(user_id=6)
        address = UserAddressReplicaRepository(database).find_one(9)
        assert (address.user_id, address.full_address) == (5, "1 Main St")
    finally:
        database.close()