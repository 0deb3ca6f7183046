import json
import os
import tempfile
from dataclasses import replace

import pytest

from domain.currency import Currency, Settings
from domain.debts import Debt, DebtStatus
from domain.goals import Goal
from domain.operations import Operation, OperationSource
from domain.wallets import Wallet
from infrastructure.repositories import JsonFileLedgerRepository, LedgerRepository
from infrastructure.sqlite_repository import SQLiteLedgerRepository


class TestLedgerRepository:
    def test_repository_is_abstract(self):
        with pytest.raises(TypeError):
            LedgerRepository()  # type: ignore


@pytest.fixture(params=["json", "sqlite"])
def repo(request, tmp_path):
    if request.param == "json":
        yield JsonFileLedgerRepository(str(tmp_path / "ledger.json"))
    else:
        repository = SQLiteLedgerRepository(str(tmp_path / "ledger.db"))
        yield repository
        repository.close()


def _operation(**overrides):
    data = {
        "type": "expense",
        "amount": 30.0,
        "currency": "EUR",
        "category": "Food",
        "wallet": "Cash",
        "comment": "lunch",
        "source": "debt-payment:10|transfer:abc",
        "occurred_at": "2026-01-05T10:00:00Z",
    }
    data.update(overrides)
    return Operation(**data)


class TestLedgerRepositoryContract:
    def test_empty_repository(self, repo):
        assert repo.load_wallets() == []
        assert repo.load_operations() == []
        assert repo.load_debts() == []
        assert repo.load_goals() == []
        assert repo.load_settings().base_currency is Currency.USD

    def test_settings_round_trip(self, repo):
        settings = Settings(base_currency="EUR", rates={"USD": 0.9, "GEL": 0.34})
        repo.save_settings(settings)
        loaded = repo.load_settings()
        assert loaded.base_currency is Currency.EUR
        assert loaded.rates[Currency.USD] == pytest.approx(0.9)
        assert loaded.rates[Currency.GEL] == pytest.approx(0.34)

    def test_wallet_upsert_is_case_insensitive(self, repo):
        repo.save_wallet(Wallet("Cash", currency="USD"))
        repo.save_wallet(Wallet("cash", currency="EUR", is_active=False))
        wallets = repo.load_wallets()
        assert len(wallets) == 1
        assert wallets[0].name == "cash"
        assert wallets[0].currency is Currency.EUR
        assert wallets[0].is_active is False
        assert repo.find_wallet(" CASH ") == wallets[0]

    def test_operation_round_trip(self, repo):
        operation = _operation()
        repo.save_operation(operation)
        (loaded,) = repo.load_operations()
        assert loaded == operation
        assert loaded.source == OperationSource(debt_payment=10.0, transfer_id="abc")

    def test_operation_upsert_by_id(self, repo):
        operation = _operation()
        repo.save_operation(operation)
        repo.save_operation(_operation(id=operation.id, amount=99))
        (loaded,) = repo.load_operations()
        assert loaded.amount == 99

    def test_debt_round_trip(self, repo):
        debt = Debt(
            type="lent",
            amount=20,
            currency="GEL",
            wallet="Cash",
            counterpart="Nino",
            existing=True,
            comment="old loan",
            registered_at="2025-12-01",
        )
        repo.save_debt(debt)
        assert repo.load_debts() == [debt]

        closed = replace(debt, status=DebtStatus.CLOSED)
        repo.save_debt(closed)
        assert repo.load_debts()[0].status is DebtStatus.CLOSED

    def test_goal_round_trip(self, repo):
        goal = Goal(title="Roof", target_amount=500, current_amount=20, currency="EUR")
        repo.save_goal(goal)
        assert repo.load_goals() == [goal]

    def test_transaction_commits_all_writes(self, repo):
        with repo.transaction():
            repo.save_wallet(Wallet("Cash"))
            repo.save_operation(_operation())
        assert len(repo.load_wallets()) == 1
        assert len(repo.load_operations()) == 1

    def test_transaction_rolls_back_on_error(self, repo):
        repo.save_wallet(Wallet("Cash"))
        with pytest.raises(RuntimeError):
            with repo.transaction():
                repo.save_operation(_operation())
                repo.save_wallet(Wallet("Bank"))
                raise RuntimeError("boom")
        assert repo.load_operations() == []
        assert [wallet.name for wallet in repo.load_wallets()] == ["Cash"]

    def test_nested_transaction_joins_outer(self, repo):
        with repo.transaction():
            with repo.transaction():
                repo.save_wallet(Wallet("Cash"))
            repo.save_wallet(Wallet("Bank"))
        assert len(repo.load_wallets()) == 2

    def test_delete_by_id(self, repo):
        operation = _operation()
        debt = Debt(type="lent", amount=5, currency="USD", wallet="Cash", counterpart="Nino")
        goal = Goal(title="Roof", target_amount=10)
        repo.save_operation(operation)
        repo.save_operation(_operation())
        repo.save_debt(debt)
        repo.save_goal(goal)

        assert repo.delete_operation(operation.id) is True
        assert repo.delete_debt(debt.id) is True
        assert repo.delete_goal(goal.id) is True
        remaining = repo.load_operations()
        assert len(remaining) == 1
        assert remaining[0].id != operation.id
        assert repo.load_debts() == []
        assert repo.load_goals() == []

        assert repo.delete_operation(operation.id) is False
        assert repo.delete_debt("missing") is False
        assert repo.delete_goal("missing") is False

    def test_delete_rolls_back_with_transaction(self, repo):
        operation = _operation()
        repo.save_operation(operation)
        with pytest.raises(RuntimeError):
            with repo.transaction():
                repo.delete_operation(operation.id)
                raise RuntimeError("boom")
        assert repo.load_operations() == [operation]

    def test_snapshot_collects_everything(self, repo):
        repo.save_wallet(Wallet("Cash"))
        repo.save_operation(_operation())
        repo.save_goal(Goal(title="Roof", target_amount=10))
        snapshot = repo.snapshot()
        assert len(snapshot.wallets) == 1
        assert len(snapshot.operations) == 1
        assert len(snapshot.goals) == 1
        assert snapshot.debts == []


class TestJsonFileLedgerRepository:
    def setup_method(self):
        self.temp_file = tempfile.NamedTemporaryFile(mode="w", delete=False, suffix=".json")
        self.temp_file.close()
        self.repo = JsonFileLedgerRepository(self.temp_file.name)

    def teardown_method(self):
        if os.path.exists(self.temp_file.name):
            os.unlink(self.temp_file.name)

    def _write(self, payload):
        with open(self.temp_file.name, "w", encoding="utf-8") as f:
            json.dump(payload, f)

    def test_corrupted_file_reads_as_empty(self):
        with open(self.temp_file.name, "w", encoding="utf-8") as f:
            f.write("{not json")
        assert self.repo.load_operations() == []

    def test_invalid_entries_are_skipped(self):
        self._write(
            {
                "operations": [
                    "garbage",
                    {"id": "x", "type": "refund", "amount": 1},
                    {
                        "id": "ok",
                        "type": "income",
                        "amount": 5,
                        "currency": "USD",
                        "category": "Gift",
                        "wallet": "Cash",
                    },
                ]
            }
        )
        operations = self.repo.load_operations()
        assert [operation.id for operation in operations] == ["ok"]

    def test_unsupported_currency_falls_back_to_base(self):
        self._write(
            {
                "settings": {"base_currency": "EUR", "rates": {}},
                "operations": [
                    {
                        "id": "1",
                        "type": "income",
                        "amount": 5,
                        "currency": "KZT",
                        "category": "Gift",
                        "wallet": "Cash",
                    }
                ],
            }
        )
        assert self.repo.load_operations()[0].currency is Currency.EUR

    def test_legacy_debt_comment_and_counterpart(self):
        self._write(
            {
                "debts": [
                    {
                        "id": "d1",
                        "type": "borrowed",
                        "amount": 50,
                        "currency": "USD",
                        "status": "open",
                        "wallet": "Cash",
                        "from": "Ivan",
                        "comment": '{"existing": true, "note": "before 2020"}',
                    }
                ]
            }
        )
        (debt,) = self.repo.load_debts()
        assert debt.existing is True
        assert debt.comment == "before 2020"
        assert debt.counterpart == "Ivan"

    def test_read_only_transaction_does_not_write(self):
        os.unlink(self.temp_file.name)
        self.repo.snapshot()
        assert not os.path.exists(self.temp_file.name)

    def test_file_is_plain_json(self):
        self.repo.save_wallet(Wallet("Cash", currency="GEL"))
        with open(self.temp_file.name, encoding="utf-8") as f:
            data = json.load(f)
        assert data["wallets"] == [{"name": "Cash", "currency": "GEL", "is_active": True}]
