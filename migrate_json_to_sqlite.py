from __future__ import annotations

import argparse
import math
import sys
from pathlib import Path

from backup import copy_ledger
from domain.ledger import calculate_balance
from infrastructure.repositories import JsonFileLedgerRepository, LedgerSnapshot
from infrastructure.sqlite_repository import SQLiteLedgerRepository

EPSILON = 0.00001
PROJECT_ROOT = Path(__file__).resolve().parent


def _resolve_schema_path(schema_path: str) -> str:
    candidate = Path(schema_path)
    if candidate.is_absolute():
        return str(candidate)
    return str((Path(__file__).resolve().parent / candidate).resolve())


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Migrate ledger data from JSON storage to SQLite storage."
    )
    parser.add_argument(
        "--json-path",
        default=str(PROJECT_ROOT / "ledger.json"),
        help="Path to source JSON file (default: <project>/ledger.json)",
    )
    parser.add_argument(
        "--sqlite-path",
        default=str(PROJECT_ROOT / "ledger.db"),
        help="Path to target SQLite database (default: <project>/ledger.db)",
    )
    parser.add_argument(
        "--schema-path",
        default=str(PROJECT_ROOT / "db" / "schema.sql"),
        help="Path to SQLite schema.sql (default: <project>/db/schema.sql)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate source and target without inserting data",
    )
    return parser.parse_args(argv)


def _validate_source_integrity(snapshot: LedgerSnapshot) -> None:
    wallet_keys = {wallet.key for wallet in snapshot.wallets}
    for operation in snapshot.operations:
        if not operation.wallet:
            raise ValueError(f"Operation {operation.id} has no wallet")
    for debt in snapshot.debts:
        if not debt.wallet:
            raise ValueError(f"Debt {debt.id} has no wallet")

    transfer_legs: dict[str, list] = {}
    for operation in snapshot.operations:
        if operation.source.transfer_id is not None:
            transfer_legs.setdefault(operation.source.transfer_id, []).append(operation)
    for transfer_id, legs in transfer_legs.items():
        types = sorted(leg.type.value for leg in legs)
        if types != ["expense", "income"]:
            raise ValueError(
                f"Transfer {transfer_id} must have one income and one expense, got {types}"
            )
        for leg in legs:
            if wallet_keys and leg.wallet.lower() not in wallet_keys:
                raise ValueError(f"Transfer {transfer_id} references unknown wallet {leg.wallet}")


def _counts(snapshot: LedgerSnapshot) -> dict[str, int]:
    return {
        "wallets": len(snapshot.wallets),
        "operations": len(snapshot.operations),
        "debts": len(snapshot.debts),
        "goals": len(snapshot.goals),
    }


def _balance(snapshot: LedgerSnapshot) -> float:
    return calculate_balance(
        snapshot.operations, snapshot.debts, snapshot.goals, snapshot.settings
    ).balance


def validate_migration(source: LedgerSnapshot, target: LedgerSnapshot) -> tuple[bool, list[str]]:
    errors: list[str] = []
    expected_counts = _counts(source)
    actual_counts = _counts(target)
    for name, expected in expected_counts.items():
        actual = actual_counts[name]
        if expected != actual:
            errors.append(f"Count mismatch for {name}: json={expected}, sqlite={actual}")

    balance_json = _balance(source)
    balance_sqlite = _balance(target)
    if not math.isclose(balance_json, balance_sqlite, abs_tol=EPSILON):
        errors.append(f"Balance mismatch: json={balance_json}, sqlite={balance_sqlite}")
    return (len(errors) == 0, errors)


def run_dry_run(args: argparse.Namespace) -> int:
    print("== DRY RUN: JSON -> SQLite migration check ==")
    try:
        schema_path = _resolve_schema_path(args.schema_path)
        if not Path(schema_path).exists():
            raise FileNotFoundError(f"schema.sql not found: {schema_path}")
        print(f"[ok] Schema path resolved: {schema_path}")

        snapshot = JsonFileLedgerRepository(args.json_path).snapshot()
        _validate_source_integrity(snapshot)

        print(f"[ok] JSON source loaded: {args.json_path}")
        for name, count in _counts(snapshot).items():
            print(f"  {name}: {count}")
        print("[ok] Integrity checks passed")
        print("[dry-run] Nothing written")
        return 0
    except (OSError, ValueError) as exc:
        print(f"[error] Dry-run failed: {exc}")
        return 1


def run_migration(args: argparse.Namespace) -> int:
    print("== MIGRATION: JSON -> SQLite ==")
    schema_path = _resolve_schema_path(args.schema_path)
    if not Path(schema_path).exists():
        print(f"[error] Migration failed: schema.sql not found: {schema_path}")
        return 1

    source = JsonFileLedgerRepository(args.json_path).snapshot()
    try:
        _validate_source_integrity(source)
    except ValueError as exc:
        print(f"[error] Migration failed: {exc}")
        return 1
    print("[ok] Source data integrity passed")

    target = SQLiteLedgerRepository(args.sqlite_path, schema_path=schema_path)
    try:
        if target.has_data():
            valid_existing, existing_errors = validate_migration(source, target.snapshot())
            if valid_existing:
                print("[ok] Target SQLite already contains equivalent data, migration skipped")
                return 0
            details = "; ".join(existing_errors[:3]) if existing_errors else "dataset mismatch"
            print(f"[error] Target SQLite is not empty and differs from source JSON: {details}")
            return 1

        try:
            with target.transaction():
                copy_ledger(JsonFileLedgerRepository(args.json_path), target)
                valid, errors = validate_migration(source, target.snapshot())
                if not valid:
                    print("[error] Validation failed, rollback started")
                    for line in errors:
                        print(f"  - {line}")
                    raise RuntimeError("migration validation failed")
        except RuntimeError:
            print("[tx] Rollback complete")
            return 1

        print("[tx] Commit complete")
        print("[ok] Migration finished successfully")
        return 0
    finally:
        target.close()


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    if args.dry_run:
        return run_dry_run(args)
    return run_migration(args)


if __name__ == "__main__":
    sys.exit(main())
