from __future__ import annotations

import math
from argparse import Namespace
from pathlib import Path

import config
from backup import create_backup, export_to_json
from domain.ledger import calculate_balance
from infrastructure.repositories import JsonFileLedgerRepository, LedgerRepository
from infrastructure.sqlite_repository import SQLiteLedgerRepository
from migrate_json_to_sqlite import run_migration

EPSILON = 0.00001


def _resolve_schema_path(schema_path: str) -> str:
    candidate = Path(schema_path)
    if candidate.is_absolute():
        return str(candidate)
    return str((Path(__file__).resolve().parent / "db" / candidate.name).resolve())


def _validate_startup_integrity(json_path: str, sqlite_repo: SQLiteLedgerRepository) -> None:
    json_snapshot = JsonFileLedgerRepository(json_path).snapshot()
    sqlite_snapshot = sqlite_repo.snapshot()

    for name in ("wallets", "operations", "debts", "goals"):
        json_count = len(getattr(json_snapshot, name))
        sqlite_count = len(getattr(sqlite_snapshot, name))
        if json_count != sqlite_count:
            raise RuntimeError(
                f"Emergency mode: {name} mismatch JSON={json_count} SQLite={sqlite_count}"
            )

    balance_json = calculate_balance(
        json_snapshot.operations, json_snapshot.debts, json_snapshot.goals, json_snapshot.settings
    ).balance
    balance_sqlite = calculate_balance(
        sqlite_snapshot.operations,
        sqlite_snapshot.debts,
        sqlite_snapshot.goals,
        sqlite_snapshot.settings,
    ).balance
    if not math.isclose(balance_json, balance_sqlite, abs_tol=EPSILON):
        raise RuntimeError(
            f"Emergency mode: balance mismatch JSON={balance_json} SQLite={balance_sqlite}"
        )
    print("[bootstrap] Integrity check passed")


def bootstrap_repository(
    use_sqlite: bool | None = None,
    json_path: str | None = None,
    sqlite_path: str | None = None,
) -> LedgerRepository:
    use_sqlite = config.USE_SQLITE if use_sqlite is None else use_sqlite
    json_path = json_path or config.JSON_PATH
    sqlite_path = sqlite_path or config.SQLITE_PATH
    schema_path = _resolve_schema_path(config.SCHEMA_PATH)

    if not use_sqlite:
        print("[bootstrap] Storage selected: JSON")
        return JsonFileLedgerRepository(json_path)

    print("[bootstrap] Storage selected: SQLite")
    create_backup(json_path)

    existing_db = SQLiteLedgerRepository(sqlite_path, schema_path=schema_path)
    try:
        db_has_data = existing_db.has_data()
    finally:
        existing_db.close()

    if not db_has_data and Path(json_path).exists():
        print("[bootstrap] SQLite empty, starting one-time migration from JSON")
        code = run_migration(
            Namespace(
                json_path=json_path,
                sqlite_path=sqlite_path,
                schema_path=schema_path,
                dry_run=False,
            )
        )
        if code != 0:
            raise RuntimeError("Emergency mode: migration to SQLite failed")
    elif db_has_data:
        print("[bootstrap] SQLite already has data, migration skipped")
    else:
        print("[bootstrap] JSON source file not found, migration skipped")

    repository = SQLiteLedgerRepository(sqlite_path, schema_path=schema_path)
    if Path(json_path).exists() and not db_has_data:
        _validate_startup_integrity(json_path, repository)
    export_to_json(sqlite_path, json_path, schema_path=schema_path)
    return repository
