from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from domain.currency import Settings
from domain.debts import Debt
from domain.goals import Goal
from domain.operations import Operation
from domain.wallets import Wallet
from infrastructure.repositories import LedgerRepository
from storage.sqlite_storage import SQLiteStorage


class SQLiteLedgerRepository(LedgerRepository):
    """LedgerRepository implementation backed by SQLite."""

    def __init__(self, db_path: str = "ledger.db", schema_path: str | None = None) -> None:
        self._storage = SQLiteStorage(db_path)
        self._storage.initialize_schema(schema_path)
        self._lock = threading.RLock()
        self._depth = 0

    def close(self) -> None:
        self._storage.close()

    @contextmanager
    def transaction(self) -> Iterator["SQLiteLedgerRepository"]:
        with self._lock:
            if self._depth > 0:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return
            self._storage.begin()
            self._depth = 1
            try:
                yield self
            except BaseException:
                self._storage.rollback()
                raise
            else:
                self._storage.commit()
            finally:
                self._depth = 0

    def load_settings(self) -> Settings:
        with self._lock:
            return self._storage.get_settings()

    def save_settings(self, settings: Settings) -> None:
        with self.transaction():
            self._storage.save_settings(settings)

    def load_wallets(self) -> list[Wallet]:
        with self._lock:
            return self._storage.get_wallets()

    def save_wallet(self, wallet: Wallet) -> None:
        with self._lock:
            self._storage.save_wallet(wallet)

    def load_operations(self) -> list[Operation]:
        with self._lock:
            return self._storage.get_operations()

    def save_operation(self, operation: Operation) -> None:
        with self._lock:
            self._storage.save_operation(operation)

    def delete_operation(self, operation_id: str) -> bool:
        with self._lock:
            return self._storage.delete_operation(operation_id)

    def load_debts(self) -> list[Debt]:
        with self._lock:
            return self._storage.get_debts()

    def save_debt(self, debt: Debt) -> None:
        with self._lock:
            self._storage.save_debt(debt)

    def delete_debt(self, debt_id: str) -> bool:
        with self._lock:
            return self._storage.delete_debt(debt_id)

    def load_goals(self) -> list[Goal]:
        with self._lock:
            return self._storage.get_goals()

    def save_goal(self, goal: Goal) -> None:
        with self._lock:
            self._storage.save_goal(goal)

    def delete_goal(self, goal_id: str) -> bool:
        with self._lock:
            return self._storage.delete_goal(goal_id)

    def has_data(self) -> bool:
        with self._lock:
            return self._storage.has_data()
