import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

import config
from domain.currency import ANCHOR_CURRENCY, Settings, sanitize_currency
from domain.debts import Debt, decode_debt_comment
from domain.goals import Goal
from domain.operations import Operation
from domain.wallets import Wallet

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerSnapshot:
    """Consistent read of everything the balance engine needs."""

    settings: Settings
    wallets: list[Wallet] = field(default_factory=list)
    operations: list[Operation] = field(default_factory=list)
    debts: list[Debt] = field(default_factory=list)
    goals: list[Goal] = field(default_factory=list)


class LedgerRepository(ABC):
    @abstractmethod
    def transaction(self):
        """Context manager: every read and write inside it is atomic."""
        pass

    @abstractmethod
    def load_settings(self) -> Settings:
        pass

    @abstractmethod
    def save_settings(self, settings: Settings) -> None:
        pass

    @abstractmethod
    def load_wallets(self) -> list[Wallet]:
        """Load all wallets, archived included."""
        pass

    @abstractmethod
    def save_wallet(self, wallet: Wallet) -> None:
        """Insert or update a wallet, matched by name case-insensitively."""
        pass

    @abstractmethod
    def load_operations(self) -> list[Operation]:
        pass

    @abstractmethod
    def save_operation(self, operation: Operation) -> None:
        """Insert or update an operation by id."""
        pass

    @abstractmethod
    def delete_operation(self, operation_id: str) -> bool:
        """Remove an operation; return False when no row matched."""
        pass

    @abstractmethod
    def load_debts(self) -> list[Debt]:
        pass

    @abstractmethod
    def save_debt(self, debt: Debt) -> None:
        """Insert or update a debt by id."""
        pass

    @abstractmethod
    def delete_debt(self, debt_id: str) -> bool:
        pass

    @abstractmethod
    def load_goals(self) -> list[Goal]:
        pass

    @abstractmethod
    def save_goal(self, goal: Goal) -> None:
        """Insert or update a goal by id."""
        pass

    @abstractmethod
    def delete_goal(self, goal_id: str) -> bool:
        pass

    def find_wallet(self, name: str) -> Wallet | None:
        key = (name or "").strip().lower()
        return next((wallet for wallet in self.load_wallets() if wallet.key == key), None)

    def snapshot(self) -> LedgerSnapshot:
        with self.transaction():
            return LedgerSnapshot(
                settings=self.load_settings(),
                wallets=self.load_wallets(),
                operations=self.load_operations(),
                debts=self.load_debts(),
                goals=self.load_goals(),
            )


def default_settings() -> Settings:
    return Settings(base_currency=sanitize_currency(config.DEFAULT_BASE_CURRENCY, ANCHOR_CURRENCY))


def settings_from_dict(payload) -> Settings:
    if not isinstance(payload, dict):
        return default_settings()
    rates = payload.get("rates")
    return Settings(
        base_currency=sanitize_currency(
            payload.get("base_currency"), default_settings().base_currency
        ),
        rates=rates if isinstance(rates, dict) else {},
    )


def wallet_to_dict(wallet: Wallet) -> dict:
    return {
        "name": wallet.name,
        "currency": wallet.currency.value if wallet.currency is not None else None,
        "is_active": wallet.is_active,
    }


def operation_to_dict(operation: Operation) -> dict:
    return {
        "id": operation.id,
        "type": operation.type.value,
        "amount": operation.amount,
        "currency": operation.currency.value,
        "category": operation.category,
        "wallet": operation.wallet,
        "comment": operation.comment,
        "source": None if operation.source.is_empty else operation.source.encode(),
        "occurred_at": operation.occurred_at.isoformat(),
    }


def operation_from_dict(item: dict, settings: Settings) -> Operation:
    return Operation(
        id=item["id"],
        type=item["type"],
        amount=item.get("amount"),
        currency=sanitize_currency(item.get("currency"), settings.base_currency),
        category=item.get("category", ""),
        wallet=item.get("wallet", ""),
        comment=item.get("comment"),
        source=item.get("source"),
        occurred_at=item.get("occurred_at"),
    )


def debt_to_dict(debt: Debt) -> dict:
    return {
        "id": debt.id,
        "type": debt.type.value,
        "amount": debt.amount,
        "currency": debt.currency.value,
        "status": debt.status.value,
        "wallet": debt.wallet,
        "counterpart": debt.counterpart,
        "existing": debt.existing,
        "comment": debt.comment,
        "registered_at": debt.registered_at.isoformat(),
    }


def debt_from_dict(item: dict, settings: Settings) -> Debt:
    comment = item.get("comment")
    existing = item.get("existing")
    if existing is None:
        existing, comment = decode_debt_comment(comment)
    counterpart = item.get("counterpart") or item.get("from") or item.get("to") or ""
    return Debt(
        id=item["id"],
        type=item["type"],
        amount=item.get("amount"),
        currency=sanitize_currency(item.get("currency"), settings.base_currency),
        status=item.get("status", "open"),
        wallet=item.get("wallet", ""),
        counterpart=counterpart,
        existing=existing is True,
        comment=comment,
        registered_at=item.get("registered_at"),
    )


def goal_to_dict(goal: Goal) -> dict:
    return {
        "id": goal.id,
        "title": goal.title,
        "target_amount": goal.target_amount,
        "current_amount": goal.current_amount,
        "status": goal.status.value,
        "currency": goal.currency.value,
    }


def goal_from_dict(item: dict, settings: Settings) -> Goal:
    return Goal(
        id=item["id"],
        title=item["title"],
        target_amount=item.get("target_amount", 0.0),
        current_amount=item.get("current_amount", 0.0),
        status=item.get("status", "active"),
        currency=sanitize_currency(item.get("currency"), settings.base_currency),
    )


class JsonFileLedgerRepository(LedgerRepository):
    _path_locks: dict[str, threading.RLock] = {}
    _path_locks_guard = threading.Lock()

    def __init__(self, file_path: str = "ledger.json"):
        self._file_path = file_path
        abs_path = os.path.abspath(file_path)
        with self._path_locks_guard:
            if abs_path not in self._path_locks:
                self._path_locks[abs_path] = threading.RLock()
            self._lock = self._path_locks[abs_path]
        self._tx_data: dict | None = None
        self._tx_owner: int | None = None
        self._tx_dirty = False

    @staticmethod
    def _empty_data() -> dict:
        return {
            "settings": default_settings().to_dict(),
            "wallets": [],
            "operations": [],
            "debts": [],
            "goals": [],
        }

    @contextmanager
    def transaction(self) -> Iterator["JsonFileLedgerRepository"]:
        with self._lock:
            if self._tx_data is not None and self._tx_owner == threading.get_ident():
                yield self
                return
            self._tx_data = self._load_data()
            self._tx_owner = threading.get_ident()
            self._tx_dirty = False
            try:
                yield self
                if self._tx_dirty:
                    self._save_data(self._tx_data)
            finally:
                self._tx_data = None
                self._tx_owner = None
                self._tx_dirty = False

    def _read(self) -> dict:
        if self._tx_data is not None and self._tx_owner == threading.get_ident():
            return self._tx_data
        return self._load_data()

    def _mutate(self, apply) -> None:
        with self._lock:
            if self._tx_data is not None and self._tx_owner == threading.get_ident():
                apply(self._tx_data)
                self._tx_dirty = True
                return
            data = self._load_data()
            apply(data)
            self._save_data(data)

    def _load_data(self) -> dict:
        with self._lock:
            try:
                with open(self._file_path, encoding="utf-8") as f:
                    data = json.load(f)
            except FileNotFoundError:
                return self._empty_data()
            except json.JSONDecodeError:
                logger.warning(
                    "Failed to parse JSON data from %s, using empty dataset",
                    self._file_path,
                )
                return self._empty_data()
        if not isinstance(data, dict):
            logger.warning("Unexpected JSON root in %s, using empty dataset", self._file_path)
            return self._empty_data()
        for key in ("wallets", "operations", "debts", "goals"):
            if not isinstance(data.get(key), list):
                data[key] = []
        if not isinstance(data.get("settings"), dict):
            data["settings"] = default_settings().to_dict()
        return data

    def _save_data(self, data: dict) -> None:
        with self._lock:
            directory = os.path.dirname(self._file_path) or "."
            fd, tmp_path = tempfile.mkstemp(prefix=".ledger_", suffix=".json", dir=directory)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, ensure_ascii=False)
                os.replace(tmp_path, self._file_path)
            finally:
                try:
                    if os.path.exists(tmp_path):
                        os.remove(tmp_path)
                except OSError:
                    logger.exception("Failed to cleanup temporary file during save: %s", tmp_path)

    def _parse_items(self, key: str, parser) -> list:
        with self._lock:
            data = self._read()
            settings = settings_from_dict(data.get("settings"))
            items = []
            for index, item in enumerate(data.get(key, [])):
                if not isinstance(item, dict):
                    logger.warning("Skipping non-dict %s entry at index %s", key, index)
                    continue
                try:
                    items.append(parser(item, settings))
                except (KeyError, TypeError, ValueError):
                    logger.exception("Skipping invalid %s entry at index %s", key, index)
            return items

    @staticmethod
    def _upsert(items: list, payload: dict, match) -> None:
        for index, item in enumerate(items):
            if isinstance(item, dict) and match(item):
                items[index] = payload
                return
        items.append(payload)

    def _remove(self, key: str, item_id: str) -> bool:
        def matches(item) -> bool:
            return isinstance(item, dict) and str(item.get("id")) == item_id

        with self._lock:
            if not any(matches(item) for item in self._read().get(key, [])):
                return False

            def apply(data: dict) -> None:
                data[key] = [item for item in data[key] if not matches(item)]

            self._mutate(apply)
            return True

    def load_settings(self) -> Settings:
        with self._lock:
            return settings_from_dict(self._read().get("settings"))

    def save_settings(self, settings: Settings) -> None:
        def apply(data: dict) -> None:
            data["settings"] = settings.to_dict()

        self._mutate(apply)

    def load_wallets(self) -> list[Wallet]:
        return self._parse_items(
            "wallets",
            lambda item, _settings: Wallet(
                name=item["name"],
                currency=item.get("currency"),
                is_active=item.get("is_active", True),
            ),
        )

    def save_wallet(self, wallet: Wallet) -> None:
        def apply(data: dict) -> None:
            self._upsert(
                data["wallets"],
                wallet_to_dict(wallet),
                lambda item: str(item.get("name", "")).strip().lower() == wallet.key,
            )

        self._mutate(apply)

    def load_operations(self) -> list[Operation]:
        return self._parse_items("operations", operation_from_dict)

    def save_operation(self, operation: Operation) -> None:
        def apply(data: dict) -> None:
            self._upsert(
                data["operations"],
                operation_to_dict(operation),
                lambda item: str(item.get("id")) == operation.id,
            )

        self._mutate(apply)

    def delete_operation(self, operation_id: str) -> bool:
        return self._remove("operations", str(operation_id))

    def load_debts(self) -> list[Debt]:
        return self._parse_items("debts", debt_from_dict)

    def save_debt(self, debt: Debt) -> None:
        def apply(data: dict) -> None:
            self._upsert(
                data["debts"],
                debt_to_dict(debt),
                lambda item: str(item.get("id")) == debt.id,
            )

        self._mutate(apply)

    def delete_debt(self, debt_id: str) -> bool:
        return self._remove("debts", str(debt_id))

    def load_goals(self) -> list[Goal]:
        return self._parse_items("goals", goal_from_dict)

    def save_goal(self, goal: Goal) -> None:
        def apply(data: dict) -> None:
            self._upsert(
                data["goals"],
                goal_to_dict(goal),
                lambda item: str(item.get("id")) == goal.id,
            )

        self._mutate(apply)

    def delete_goal(self, goal_id: str) -> bool:
        return self._remove("goals", str(goal_id))
