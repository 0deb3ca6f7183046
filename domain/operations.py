import math
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum

from .currency import ANCHOR_CURRENCY, Currency, sanitize_currency
from .validation import clean_text, parse_timestamp

SOURCE_SEPARATOR = "|"
DEBT_PAYMENT_PREFIX = "debt-payment:"
TRANSFER_PREFIX = "transfer:"
DEBT_PREFIX = "debt:"
DEBT_ADJUSTMENT_PREFIX = "debt-adjustment:"
CLOSED_FLAG = "closed"


class OperationType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


def _parse_payment(raw: str) -> float | None:
    value = raw.strip()
    if not value:
        return None
    try:
        amount = float(value)
    except ValueError:
        return None
    if not math.isfinite(amount) or amount <= 0:
        return None
    return amount


def _format_amount(amount: float) -> str:
    return f"{amount:.10f}".rstrip("0").rstrip(".")


@dataclass(frozen=True)
class DebtAdjustment:
    """Part of an expense applied to one debt.

    ``closed`` marks a payment that settled the debt; the debt then keeps its
    last amount and only its status changes.
    """

    debt_id: str
    amount: float
    closed: bool = False

    def encode(self) -> str:
        text = f"{DEBT_ADJUSTMENT_PREFIX}{self.debt_id}:{_format_amount(self.amount)}"
        return f"{text}:{CLOSED_FLAG}" if self.closed else text


def _parse_adjustment(raw: str) -> DebtAdjustment | None:
    parts = [part.strip() for part in raw.split(":")]
    closed = len(parts) > 2 and parts[-1] == CLOSED_FLAG
    if closed:
        parts = parts[:-1]
    if len(parts) < 2:
        return None
    debt_id = ":".join(parts[:-1]).strip()
    amount = _parse_payment(parts[-1])
    if not debt_id or amount is None:
        return None
    return DebtAdjustment(debt_id=debt_id, amount=amount, closed=closed)


@dataclass(frozen=True)
class OperationSource:
    """Structured form of the ``source`` side channel of an operation.

    Each kind keeps only the first well-formed tag found (debt adjustments:
    the first per debt); any other segment is preserved verbatim in ``tags``.
    """

    debt_payment: float | None = None
    transfer_id: str | None = None
    debt_id: str | None = None
    tags: tuple[str, ...] = ()
    debt_adjustments: tuple[DebtAdjustment, ...] = ()

    @property
    def debt_payment_amount(self) -> float:
        return self.debt_payment or 0.0

    @property
    def is_empty(self) -> bool:
        return (
            self.debt_payment is None
            and self.transfer_id is None
            and self.debt_id is None
            and not self.tags
            and not self.debt_adjustments
        )

    def encode(self) -> str:
        segments = list(self.tags)
        if self.transfer_id is not None:
            segments.append(f"{TRANSFER_PREFIX}{self.transfer_id}")
        if self.debt_id is not None:
            segments.append(f"{DEBT_PREFIX}{self.debt_id}")
        if self.debt_payment is not None:
            segments.append(f"{DEBT_PAYMENT_PREFIX}{_format_amount(self.debt_payment)}")
        segments.extend(adjustment.encode() for adjustment in self.debt_adjustments)
        return SOURCE_SEPARATOR.join(segments)

    def __str__(self) -> str:
        return self.encode()


EMPTY_SOURCE = OperationSource()


def parse_source(value) -> OperationSource:
    if isinstance(value, OperationSource):
        return value
    if not isinstance(value, str) or not value.strip():
        return EMPTY_SOURCE

    debt_payment: float | None = None
    transfer_id: str | None = None
    debt_id: str | None = None
    tags: list[str] = []
    adjustments: dict[str, DebtAdjustment] = {}

    for raw in value.split(SOURCE_SEPARATOR):
        segment = raw.strip()
        if not segment:
            continue
        if segment.startswith(DEBT_ADJUSTMENT_PREFIX):
            adjustment = _parse_adjustment(segment[len(DEBT_ADJUSTMENT_PREFIX):])
            if adjustment is not None:
                adjustments.setdefault(adjustment.debt_id, adjustment)
            continue
        if segment.startswith(DEBT_PAYMENT_PREFIX):
            if debt_payment is None:
                debt_payment = _parse_payment(segment[len(DEBT_PAYMENT_PREFIX):])
            continue
        if segment.startswith(TRANSFER_PREFIX):
            if transfer_id is None:
                transfer_id = segment[len(TRANSFER_PREFIX):].strip() or None
            continue
        if segment.startswith(DEBT_PREFIX):
            if debt_id is None:
                debt_id = segment[len(DEBT_PREFIX):].strip() or None
            continue
        tags.append(segment)

    return OperationSource(
        debt_payment=debt_payment,
        transfer_id=transfer_id,
        debt_id=debt_id,
        tags=tuple(tags),
        debt_adjustments=tuple(adjustments.values()),
    )


def extract_debt_payment_amount(source) -> float:
    return parse_source(source).debt_payment_amount


def append_debt_payment(source, amount: float) -> OperationSource:
    """Attach a debt-payment tag unless the source already carries one."""
    parsed = parse_source(source)
    payment = _parse_payment(str(amount))
    if payment is None or parsed.debt_payment is not None:
        return parsed
    return replace(parsed, debt_payment=payment)


def append_debt_adjustments(source, adjustments) -> OperationSource:
    """Record per-debt payments; debts already listed keep their first entry."""
    parsed = parse_source(source)
    merged = {adjustment.debt_id: adjustment for adjustment in parsed.debt_adjustments}
    for adjustment in adjustments:
        merged.setdefault(adjustment.debt_id, adjustment)
    return replace(parsed, debt_adjustments=tuple(merged.values()))


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class Operation:
    """Income or expense event.

    An unsupported ``currency`` falls back to USD here; the repositories
    resolve it against the ledger base currency before constructing.
    """

    type: OperationType
    amount: float
    currency: Currency
    category: str
    wallet: str
    id: str = field(default_factory=_new_id)
    comment: str | None = None
    source: OperationSource = EMPTY_SOURCE
    occurred_at: datetime | str | None = None

    def __post_init__(self) -> None:
        try:
            op_type = OperationType(str(getattr(self.type, "value", self.type)).strip().lower())
        except ValueError as exc:
            raise ValueError(f"Unknown operation type: {self.type}") from exc
        object.__setattr__(self, "type", op_type)
        try:
            amount = float(self.amount)
        except (TypeError, ValueError):
            amount = 0.0
        object.__setattr__(self, "amount", amount if math.isfinite(amount) else 0.0)
        object.__setattr__(self, "currency", sanitize_currency(self.currency, ANCHOR_CURRENCY))
        object.__setattr__(self, "category", clean_text(self.category))
        object.__setattr__(self, "wallet", clean_text(self.wallet))
        object.__setattr__(self, "id", str(self.id))
        object.__setattr__(self, "comment", clean_text(self.comment) or None)
        object.__setattr__(self, "source", parse_source(self.source))
        object.__setattr__(self, "occurred_at", parse_timestamp(self.occurred_at))

    @property
    def is_income(self) -> bool:
        return self.type is OperationType.INCOME

    @property
    def is_expense(self) -> bool:
        return self.type is OperationType.EXPENSE

    @property
    def debt_payment_amount(self) -> float:
        return self.source.debt_payment_amount

    def signed_amount(self) -> float:
        return self.amount if self.is_income else -self.amount
