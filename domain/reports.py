from prettytable import PrettyTable

from .currency import Settings, from_base
from .ledger import BalanceSummary
from .wallets import WalletBalanceEntry, WalletBalances


def _money(value: float) -> str:
    return f"{value:.2f}" if value >= 0 else f"({abs(value):.2f})"


class WalletReport:
    def __init__(
        self,
        balances: WalletBalances,
        summary: BalanceSummary,
        settings: Settings,
        include_inactive: bool = True,
    ):
        self._balances = WalletBalances(
            entry for entry in balances.entries() if include_inactive or entry.active
        )
        self._summary = summary
        self._settings = settings

    @property
    def base_currency(self) -> str:
        return self._settings.base_currency.value

    @property
    def summary(self) -> BalanceSummary:
        return self._summary

    def entries(self) -> list[WalletBalanceEntry]:
        return sorted(
            self._balances.entries(), key=lambda entry: (not entry.active, entry.wallet.lower())
        )

    @staticmethod
    def native_label(entry: WalletBalanceEntry) -> str:
        dominant = entry.dominant_amount
        if dominant is None:
            return "-"
        currency, amount = dominant
        return f"{_money(amount)} {currency.value}"

    def wallet_rows(self) -> list[tuple[str, float, str, str]]:
        return [
            (
                entry.wallet,
                entry.base_amount,
                self.native_label(entry),
                "active" if entry.active else "archived",
            )
            for entry in self.entries()
        ]

    def total_base(self) -> float:
        return self._balances.total_base()

    def total_in(self, currency) -> float:
        return from_base(self._summary.balance, currency, self._settings)

    def wallets_table(self) -> str:
        table = PrettyTable()
        table.field_names = ["Wallet", f"Balance ({self.base_currency})", "Native", "Status"]
        table.align["Wallet"] = "l"
        for wallet, base_amount, native, status in self.wallet_rows():
            table.add_row([wallet, _money(base_amount), native, status])
        table.add_row(["TOTAL", _money(self.total_base()), "", ""], divider=True)
        return str(table)

    def summary_table(self) -> str:
        table = PrettyTable()
        table.field_names = ["Metric", f"Amount ({self.base_currency})"]
        table.align["Metric"] = "l"
        summary = self._summary
        table.add_row(["Operations", _money(summary.operations_balance)])
        table.add_row(["Debt effect", _money(summary.debts.balance_effect)], divider=True)
        table.add_row(["Balance", _money(summary.balance)])
        table.add_row(["Borrowed", _money(summary.borrowed)])
        table.add_row(["Lent", _money(summary.lent)], divider=True)
        table.add_row(["Net balance", _money(summary.net_balance)])
        return str(table)

    def as_table(self) -> str:
        return f"{self.wallets_table()}\n{self.summary_table()}"
