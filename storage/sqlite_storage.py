from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

import config
from domain.currency import ANCHOR_CURRENCY, Settings, sanitize_currency
from domain.debts import Debt
from domain.goals import Goal
from domain.operations import Operation
from domain.wallets import Wallet

from .base import Storage

logger = logging.getLogger(__name__)


class SQLiteStorage(Storage):
    """SQLite-backed storage adapter without domain/business logic.

    The connection runs in autocommit mode; callers group statements with
    :meth:`begin`, :meth:`commit` and :meth:`rollback`.
    """

    def __init__(self, db_path: str = "ledger.db") -> None:
        self._db_path = db_path
        self._conn = sqlite3.connect(db_path, isolation_level=None, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON;")
        self._conn.execute("PRAGMA journal_mode = WAL;")

    def close(self) -> None:
        self._conn.close()

    def initialize_schema(self, schema_path: str | None = None) -> None:
        if schema_path is None:
            schema_path = str(Path(__file__).resolve().parents[1] / "db" / "schema.sql")
        schema = Path(schema_path).read_text(encoding="utf-8")
        self._conn.executescript(schema)

    def begin(self) -> None:
        self._conn.execute("BEGIN IMMEDIATE")

    def commit(self) -> None:
        self._conn.execute("COMMIT")

    def rollback(self) -> None:
        self._conn.execute("ROLLBACK")

    def _delete(self, table: str, item_id: str) -> bool:
        cursor = self._conn.execute(f"DELETE FROM {table} WHERE id = ?", (str(item_id),))
        return cursor.rowcount > 0

    def has_data(self) -> bool:
        for table in ("wallets", "operations", "debts", "goals"):
            if int(self._conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]) > 0:
                return True
        return False

    def get_settings(self) -> Settings:
        row = self._conn.execute("SELECT base_currency FROM settings WHERE id = 1").fetchone()
        base = sanitize_currency(
            row["base_currency"] if row else config.DEFAULT_BASE_CURRENCY, ANCHOR_CURRENCY
        )
        rates = {
            str(rate_row["currency"]): float(rate_row["rate"])
            for rate_row in self._conn.execute("SELECT currency, rate FROM currency_rates")
        }
        return Settings(base_currency=base, rates=rates)

    def save_settings(self, settings: Settings) -> None:
        self._conn.execute(
            """
            INSERT INTO settings (id, base_currency) VALUES (1, ?)
            ON CONFLICT(id) DO UPDATE SET base_currency = excluded.base_currency
            """,
            (settings.base_currency.value,),
        )
        self._conn.executemany(
            """
            INSERT INTO currency_rates (currency, rate) VALUES (?, ?)
            ON CONFLICT(currency) DO UPDATE SET rate = excluded.rate
            """,
            [(currency.value, float(rate)) for currency, rate in settings.rates.items()],
        )

    def get_wallets(self) -> list[Wallet]:
        rows = self._conn.execute(
            "SELECT name, currency, is_active FROM wallets ORDER BY rowid"
        ).fetchall()
        return [
            Wallet(
                name=str(row["name"]),
                currency=row["currency"],
                is_active=bool(row["is_active"]),
            )
            for row in rows
        ]

    def save_wallet(self, wallet: Wallet) -> None:
        self._conn.execute(
            """
            INSERT INTO wallets (name_key, name, currency, is_active)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(name_key) DO UPDATE SET
                name = excluded.name,
                currency = excluded.currency,
                is_active = excluded.is_active
            """,
            (
                wallet.key,
                wallet.name,
                wallet.currency.value if wallet.currency is not None else None,
                int(wallet.is_active),
            ),
        )

    def get_operations(self) -> list[Operation]:
        settings = self.get_settings()
        rows = self._conn.execute(
            """
            SELECT id, type, amount, currency, category, wallet, comment, source, occurred_at
            FROM operations
            ORDER BY occurred_at, rowid
            """
        ).fetchall()
        operations: list[Operation] = []
        for row in rows:
            try:
                operations.append(
                    Operation(
                        id=str(row["id"]),
                        type=str(row["type"]),
                        amount=float(row["amount"]),
                        currency=sanitize_currency(row["currency"], settings.base_currency),
                        category=str(row["category"]),
                        wallet=str(row["wallet"]),
                        comment=row["comment"],
                        source=row["source"],
                        occurred_at=str(row["occurred_at"]),
                    )
                )
            except ValueError:
                logger.exception("Skipping invalid operation row id=%s", row["id"])
        return operations

    def save_operation(self, operation: Operation) -> None:
        self._conn.execute(
            """
            INSERT INTO operations (
                id, type, amount, currency, category, wallet, comment, source, occurred_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                type = excluded.type,
                amount = excluded.amount,
                currency = excluded.currency,
                category = excluded.category,
                wallet = excluded.wallet,
                comment = excluded.comment,
                source = excluded.source,
                occurred_at = excluded.occurred_at
            """,
            (
                operation.id,
                operation.type.value,
                float(operation.amount),
                operation.currency.value,
                operation.category,
                operation.wallet,
                operation.comment,
                None if operation.source.is_empty else operation.source.encode(),
                operation.occurred_at.isoformat(),
            ),
        )

    def delete_operation(self, operation_id: str) -> bool:
        return self._delete("operations", operation_id)

    def get_debts(self) -> list[Debt]:
        settings = self.get_settings()
        rows = self._conn.execute(
            """
            SELECT id, type, amount, currency, status, wallet, counterpart, existing,
                   comment, registered_at
            FROM debts
            ORDER BY registered_at, rowid
            """
        ).fetchall()
        debts: list[Debt] = []
        for row in rows:
            try:
                debts.append(
                    Debt(
                        id=str(row["id"]),
                        type=str(row["type"]),
                        amount=float(row["amount"]),
                        currency=sanitize_currency(row["currency"], settings.base_currency),
                        status=str(row["status"]),
                        wallet=str(row["wallet"]),
                        counterpart=str(row["counterpart"] or ""),
                        existing=bool(row["existing"]),
                        comment=row["comment"],
                        registered_at=str(row["registered_at"]),
                    )
                )
            except ValueError:
                logger.exception("Skipping invalid debt row id=%s", row["id"])
        return debts

    def save_debt(self, debt: Debt) -> None:
        self._conn.execute(
            """
            INSERT INTO debts (
                id, type, amount, currency, status, wallet, counterpart, existing,
                comment, registered_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                type = excluded.type,
                amount = excluded.amount,
                currency = excluded.currency,
                status = excluded.status,
                wallet = excluded.wallet,
                counterpart = excluded.counterpart,
                existing = excluded.existing,
                comment = excluded.comment,
                registered_at = excluded.registered_at
            """,
            (
                debt.id,
                debt.type.value,
                float(debt.amount),
                debt.currency.value,
                debt.status.value,
                debt.wallet,
                debt.counterpart,
                int(debt.existing),
                debt.comment,
                debt.registered_at.isoformat(),
            ),
        )

    def delete_debt(self, debt_id: str) -> bool:
        return self._delete("debts", debt_id)

    def get_goals(self) -> list[Goal]:
        rows = self._conn.execute(
            """
            SELECT id, title, target_amount, current_amount, status, currency
            FROM goals
            ORDER BY rowid
            """
        ).fetchall()
        return [
            Goal(
                id=str(row["id"]),
                title=str(row["title"]),
                target_amount=float(row["target_amount"]),
                current_amount=float(row["current_amount"]),
                status=str(row["status"]),
                currency=row["currency"],
            )
            for row in rows
        ]

    def save_goal(self, goal: Goal) -> None:
        self._conn.execute(
            """
            INSERT INTO goals (id, title, target_amount, current_amount, status, currency)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                title = excluded.title,
                target_amount = excluded.target_amount,
                current_amount = excluded.current_amount,
                status = excluded.status,
                currency = excluded.currency
            """,
            (
                goal.id,
                goal.title,
                float(goal.target_amount),
                float(goal.current_amount),
                goal.status.value,
                goal.currency.value,
            ),
        )

    def delete_goal(self, goal_id: str) -> bool:
        return self._delete("goals", goal_id)
