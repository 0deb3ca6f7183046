import json
import math
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from .currency import ANCHOR_CURRENCY, Currency, Settings, sanitize_currency, to_base
from .validation import clean_text, parse_timestamp


class DebtType(str, Enum):
    BORROWED = "borrowed"
    LENT = "lent"


class DebtStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


# Effect of an open, non-historical debt on the cash at hand: money we
# borrowed is in the wallet, money we lent has left it.
DEBT_BALANCE_SIGN: dict[DebtType, float] = {
    DebtType.BORROWED: 1.0,
    DebtType.LENT: -1.0,
}


def decode_debt_comment(comment) -> tuple[bool, str | None]:
    """Split a stored debt comment into ``(existing, note)``.

    Older rows stored the historical-debt flag as a JSON object inside the
    comment; plain text comments are returned unchanged.
    """
    text = clean_text(comment)
    if not text:
        return False, None
    try:
        payload = json.loads(text)
    except ValueError:
        return False, text
    if not isinstance(payload, dict):
        return False, text
    note = payload.get("note")
    return payload.get("existing") is True, clean_text(note) or None


@dataclass(frozen=True)
class Debt:
    """Money borrowed or lent through a wallet.

    An unsupported ``currency`` falls back to USD here; the repositories
    resolve it against the ledger base currency before constructing.
    """

    type: DebtType
    amount: float
    currency: Currency
    wallet: str
    counterpart: str = ""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: DebtStatus = DebtStatus.OPEN
    existing: bool = False
    comment: str | None = None
    registered_at: datetime | str | None = None

    def __post_init__(self) -> None:
        try:
            debt_type = DebtType(str(getattr(self.type, "value", self.type)).strip().lower())
        except ValueError as exc:
            raise ValueError(f"Unknown debt type: {self.type}") from exc
        object.__setattr__(self, "type", debt_type)
        status_raw = str(getattr(self.status, "value", self.status)).strip().lower()
        status = DebtStatus.CLOSED if status_raw == DebtStatus.CLOSED.value else DebtStatus.OPEN
        object.__setattr__(self, "status", status)
        try:
            amount = float(self.amount)
        except (TypeError, ValueError):
            amount = 0.0
        object.__setattr__(self, "amount", amount if math.isfinite(amount) else 0.0)
        object.__setattr__(self, "currency", sanitize_currency(self.currency, ANCHOR_CURRENCY))
        object.__setattr__(self, "wallet", clean_text(self.wallet))
        object.__setattr__(self, "counterpart", clean_text(self.counterpart))
        object.__setattr__(self, "id", str(self.id))
        object.__setattr__(self, "existing", self.existing is True)
        object.__setattr__(self, "comment", clean_text(self.comment) or None)
        object.__setattr__(self, "registered_at", parse_timestamp(self.registered_at))

    @property
    def is_open(self) -> bool:
        return self.status is DebtStatus.OPEN

    @property
    def affects_balance(self) -> bool:
        return self.is_open and not self.existing

    @property
    def balance_sign(self) -> float:
        return DEBT_BALANCE_SIGN[self.type]


@dataclass(frozen=True)
class DebtSummary:
    borrowed: float = 0.0
    lent: float = 0.0
    balance_effect: float = 0.0


def summarize_debts(debts: Iterable[Debt], settings: Settings) -> DebtSummary:
    """Totals of open debts in base currency.

    Historical (``existing``) debts count toward borrowed/lent but leave the
    cash balance untouched.
    """
    borrowed = 0.0
    lent = 0.0
    balance_effect = 0.0
    for debt in debts:
        if not debt.is_open:
            continue
        amount_in_base = to_base(debt.amount, debt.currency, settings)
        if debt.type is DebtType.BORROWED:
            borrowed += amount_in_base
        else:
            lent += amount_in_base
        if debt.affects_balance:
            balance_effect += debt.balance_sign * amount_in_base
    return DebtSummary(borrowed=borrowed, lent=lent, balance_effect=balance_effect)
