import pytest

from domain.currency import Currency, Settings
from domain.debts import Debt
from domain.ledger import calculate_balance
from domain.operations import Operation
from domain.reports import WalletReport
from domain.wallets import Wallet, build_wallet_balances

SETTINGS = Settings(base_currency="USD", rates={"EUR": 1.1})


def _report(include_inactive=True):
    wallets = [Wallet("Cash"), Wallet("Archive", is_active=False), Wallet("bank")]
    operations = [
        Operation(type="income", amount=100, currency="USD", category="Gift", wallet="Cash"),
        Operation(type="expense", amount=10, currency="EUR", category="Food", wallet="bank"),
        Operation(type="income", amount=5, currency="USD", category="Gift", wallet="Archive"),
    ]
    debts = [Debt(type="lent", amount=20, currency="USD", wallet="Cash", counterpart="Nino")]
    balances = build_wallet_balances(wallets, operations, debts, [], SETTINGS)
    summary = calculate_balance(operations, debts, [], SETTINGS)
    return WalletReport(balances, summary, SETTINGS, include_inactive=include_inactive)


class TestWalletReport:
    def test_active_wallets_come_first(self):
        names = [entry.wallet for entry in _report().entries()]
        assert names == ["bank", "Cash", "Archive"]

    def test_inactive_wallets_can_be_hidden(self):
        names = [entry.wallet for entry in _report(include_inactive=False).entries()]
        assert names == ["bank", "Cash"]

    def test_rows_show_base_and_native_amounts(self):
        rows = _report().wallet_rows()
        assert rows[0] == ("bank", pytest.approx(-11.0), "(10.00) EUR", "active")
        assert rows[1] == ("Cash", 80.0, "80.00 USD", "active")
        assert rows[2][3] == "archived"

    def test_total_in_other_currency(self):
        report = _report()
        assert report.summary.balance == pytest.approx(74.0)
        assert report.total_in(Currency.EUR) == pytest.approx(74.0 / 1.1)

    def test_tables_render(self):
        text = _report().as_table()
        assert "Balance (USD)" in text
        assert "TOTAL" in text
        assert "Net balance" in text
        assert "(11.00)" in text

    def test_total_follows_visible_wallets(self):
        assert _report().total_base() == pytest.approx(74.0)
        assert _report(include_inactive=False).total_base() == pytest.approx(69.0)
        assert "69.00" in _report(include_inactive=False).wallets_table()
