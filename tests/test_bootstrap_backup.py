from __future__ import annotations

import json
from argparse import Namespace
from pathlib import Path

from backup import copy_ledger, create_backup, export_to_json
from bootstrap import bootstrap_repository
from domain.currency import Settings
from domain.debts import Debt
from domain.operations import Operation
from domain.wallets import Wallet
from infrastructure.repositories import JsonFileLedgerRepository
from infrastructure.sqlite_repository import SQLiteLedgerRepository
from migrate_json_to_sqlite import main as migrate_main
from migrate_json_to_sqlite import run_migration


def _schema_path() -> str:
    return str(Path(__file__).resolve().parents[1] / "db" / "schema.sql")


def _seed_json(path: Path) -> JsonFileLedgerRepository:
    repo = JsonFileLedgerRepository(str(path))
    with repo.transaction():
        repo.save_settings(Settings(rates={"EUR": 1.1}))
        repo.save_wallet(Wallet("Cash", currency="USD"))
        repo.save_operation(
            Operation(type="income", amount=100, currency="EUR", category="Gift", wallet="Cash")
        )
        repo.save_debt(
            Debt(type="borrowed", amount=10, currency="USD", wallet="Cash", counterpart="Ivan")
        )
    return repo


def test_create_backup_creates_timestamped_copy(tmp_path) -> None:
    src = tmp_path / "ledger.json"
    src.write_text('{"operations": []}', encoding="utf-8")

    backup_path = create_backup(str(src))
    assert backup_path is not None
    backup = Path(backup_path)
    assert backup.exists()
    assert backup.parent.name == "backups"
    assert backup.name.startswith("ledger_backup_")
    assert backup.suffix == ".json"


def test_create_backup_without_source(tmp_path) -> None:
    assert create_backup(str(tmp_path / "missing.json")) is None


def test_copy_ledger_between_backends(tmp_path) -> None:
    source = _seed_json(tmp_path / "ledger.json")
    target = SQLiteLedgerRepository(str(tmp_path / "ledger.db"), schema_path=_schema_path())
    try:
        copy_ledger(source, target)
        assert target.load_operations() == source.load_operations()
        assert target.load_debts() == source.load_debts()
        assert target.load_wallets() == source.load_wallets()
    finally:
        target.close()


def test_export_to_json_from_sqlite(tmp_path) -> None:
    sqlite_path = tmp_path / "ledger.db"
    json_path = tmp_path / "mirror.json"
    repo = SQLiteLedgerRepository(str(sqlite_path), schema_path=_schema_path())
    repo.save_wallet(Wallet("Main wallet", currency="GEL"))
    repo.close()

    export_to_json(str(sqlite_path), str(json_path), schema_path=_schema_path())

    payload = json.loads(json_path.read_text(encoding="utf-8"))
    assert payload["wallets"] == [{"name": "Main wallet", "currency": "GEL", "is_active": True}]


def test_bootstrap_json_backend(tmp_path) -> None:
    repo = bootstrap_repository(use_sqlite=False, json_path=str(tmp_path / "ledger.json"))
    assert isinstance(repo, JsonFileLedgerRepository)


def test_bootstrap_sqlite_migrates_json_once(tmp_path) -> None:
    json_path = tmp_path / "ledger.json"
    sqlite_path = tmp_path / "ledger.db"
    source = _seed_json(json_path)

    repo = bootstrap_repository(
        use_sqlite=True, json_path=str(json_path), sqlite_path=str(sqlite_path)
    )
    try:
        assert isinstance(repo, SQLiteLedgerRepository)
        assert repo.load_operations() == source.load_operations()
        assert list((tmp_path / "backups").iterdir())
    finally:
        repo.close()

    again = bootstrap_repository(
        use_sqlite=True, json_path=str(json_path), sqlite_path=str(sqlite_path)
    )
    try:
        assert len(again.load_operations()) == 1
    finally:
        again.close()


def test_migration_dry_run_writes_nothing(tmp_path) -> None:
    json_path = tmp_path / "ledger.json"
    sqlite_path = tmp_path / "ledger.db"
    _seed_json(json_path)

    code = migrate_main(
        [
            "--json-path",
            str(json_path),
            "--sqlite-path",
            str(sqlite_path),
            "--schema-path",
            _schema_path(),
            "--dry-run",
        ]
    )
    assert code == 0
    assert not sqlite_path.exists()


def test_migration_refuses_different_target(tmp_path) -> None:
    json_path = tmp_path / "ledger.json"
    sqlite_path = tmp_path / "ledger.db"
    _seed_json(json_path)
    other = SQLiteLedgerRepository(str(sqlite_path), schema_path=_schema_path())
    other.save_wallet(Wallet("Other"))
    other.close()

    args = Namespace(
        json_path=str(json_path),
        sqlite_path=str(sqlite_path),
        schema_path=_schema_path(),
        dry_run=False,
    )
    assert run_migration(args) == 1


def test_migration_rejects_half_transfer(tmp_path) -> None:
    json_path = tmp_path / "ledger.json"
    repo = _seed_json(json_path)
    repo.save_operation(
        Operation(
            type="expense",
            amount=5,
            currency="USD",
            category="Transfer between wallets",
            wallet="Cash",
            source="transfer:lonely",
        )
    )
    args = Namespace(
        json_path=str(json_path),
        sqlite_path=str(tmp_path / "ledger.db"),
        schema_path=_schema_path(),
        dry_run=False,
    )
    assert run_migration(args) == 1
