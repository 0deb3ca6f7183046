from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field

from .currency import Currency, Settings, sanitize_currency, to_base
from .debts import Debt
from .goals import build_goal_category_set
from .ledger import operation_delta
from .operations import Operation
from .validation import clean_text, normalize_key

DISPLAY_EPSILON = 0.009


@dataclass(frozen=True)
class Wallet:
    name: str
    currency: Currency | None = None
    is_active: bool = True

    def __post_init__(self) -> None:
        name = clean_text(self.name)
        if not name:
            raise ValueError("Wallet name is required")
        object.__setattr__(self, "name", name)
        if self.currency is not None:
            object.__setattr__(self, "currency", sanitize_currency(self.currency))
        object.__setattr__(self, "is_active", bool(self.is_active))

    @property
    def key(self) -> str:
        return normalize_key(self.name)


@dataclass
class WalletBalanceEntry:
    wallet: str
    base_amount: float = 0.0
    by_currency: dict[Currency, float] = field(default_factory=dict)
    active: bool = False

    def add(self, base: float, native: float, currency: Currency) -> None:
        self.base_amount += base
        self.by_currency[currency] = self.by_currency.get(currency, 0.0) + native

    def available(self, currency) -> float:
        return self.by_currency.get(sanitize_currency(currency), 0.0)

    @property
    def dominant_amount(self) -> tuple[Currency, float] | None:
        """Largest non-negligible native amount; a display hint only."""
        candidates = [
            (currency, amount)
            for currency, amount in self.by_currency.items()
            if abs(amount) > DISPLAY_EPSILON
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda item: abs(item[1]))


class WalletBalances(Mapping):
    """Wallet entries keyed by canonical name, looked up case-insensitively."""

    def __init__(self, entries: Iterable[WalletBalanceEntry] = ()) -> None:
        self._entries: dict[str, WalletBalanceEntry] = {}
        for entry in entries:
            self._entries.setdefault(normalize_key(entry.wallet), entry)

    def __getitem__(self, wallet: str) -> WalletBalanceEntry:
        return self._entries[normalize_key(wallet)]

    def __contains__(self, wallet) -> bool:
        return isinstance(wallet, str) and normalize_key(wallet) in self._entries

    def __iter__(self) -> Iterator[str]:
        return (entry.wallet for entry in self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self) -> list[WalletBalanceEntry]:
        return list(self._entries.values())

    def total_base(self) -> float:
        return sum(entry.base_amount for entry in self._entries.values())


def get_wallet_balance(balances: WalletBalances, wallet: str) -> WalletBalanceEntry | None:
    return balances.get(wallet)


def build_wallet_balances(
    wallets: Iterable,
    operations: Iterable[Operation],
    debts: Iterable[Debt],
    goals: Iterable,
    settings: Settings,
) -> WalletBalances:
    """Per-wallet balances in base and native currencies.

    ``wallets`` seeds the result with configured wallets, given either as
    ``Wallet`` records or plain names (plain names count as active). Wallets
    only referenced by operations or debts get a bucket on demand and are
    flagged inactive.
    """
    goal_keys = build_goal_category_set(goals)
    buckets: dict[str, WalletBalanceEntry] = {}
    active_keys: set[str] = set()

    def ensure_entry(name: str) -> WalletBalanceEntry:
        key = normalize_key(name)
        entry = buckets.get(key)
        if entry is None:
            entry = WalletBalanceEntry(wallet=clean_text(name))
            buckets[key] = entry
        return entry

    for wallet in wallets:
        if isinstance(wallet, Wallet):
            ensure_entry(wallet.name)
            if wallet.is_active:
                active_keys.add(wallet.key)
        elif clean_text(wallet):
            ensure_entry(wallet)
            active_keys.add(normalize_key(wallet))

    for operation in operations:
        delta = operation_delta(operation, goal_keys, settings)
        if delta is None:
            continue
        ensure_entry(operation.wallet).add(delta.base, delta.native, delta.currency)

    for debt in debts:
        if not debt.affects_balance:
            continue
        sign = debt.balance_sign
        ensure_entry(debt.wallet).add(
            sign * to_base(debt.amount, debt.currency, settings),
            sign * debt.amount,
            debt.currency,
        )

    for key, entry in buckets.items():
        entry.active = key in active_keys

    return WalletBalances(buckets.values())
