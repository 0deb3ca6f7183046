from __future__ import annotations

import shutil
from datetime import datetime
from pathlib import Path

from infrastructure.repositories import JsonFileLedgerRepository, LedgerRepository
from infrastructure.sqlite_repository import SQLiteLedgerRepository


def create_backup(json_path: str) -> str | None:
    source = Path(json_path)
    if not source.exists():
        return None
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    backup_dir = source.parent / "backups"
    backup_dir.mkdir(exist_ok=True)
    backup_path = backup_dir / f"{source.stem}_backup_{stamp}{source.suffix}"
    shutil.copy2(source, backup_path)
    print(f"[backup] JSON backup created: {backup_path}")
    return str(backup_path)


def copy_ledger(source: LedgerRepository, target: LedgerRepository) -> None:
    """Write every entity of ``source`` into ``target`` in one transaction."""
    snapshot = source.snapshot()
    with target.transaction():
        target.save_settings(snapshot.settings)
        for wallet in snapshot.wallets:
            target.save_wallet(wallet)
        for operation in snapshot.operations:
            target.save_operation(operation)
        for debt in snapshot.debts:
            target.save_debt(debt)
        for goal in snapshot.goals:
            target.save_goal(goal)


def export_to_json(sqlite_path: str, json_path: str, schema_path: str | None = None) -> None:
    sqlite_repo = SQLiteLedgerRepository(sqlite_path, schema_path=schema_path)
    try:
        copy_ledger(sqlite_repo, JsonFileLedgerRepository(json_path))
        print(f"[backup] SQLite exported to JSON: {json_path}")
    finally:
        sqlite_repo.close()
