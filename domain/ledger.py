from collections.abc import Iterable
from dataclasses import dataclass

from .currency import Currency, Settings, to_base
from .debts import Debt, DebtSummary, summarize_debts
from .goals import build_goal_category_set, is_goal_expense
from .operations import Operation


@dataclass(frozen=True)
class OperationDelta:
    """Signed effect of one operation on its wallet."""

    base: float
    native: float
    currency: Currency


def operation_delta(
    operation: Operation, goal_keys: frozenset[str], settings: Settings
) -> OperationDelta | None:
    """Return the balance effect of ``operation`` or ``None`` for goal savings.

    An expense tagged with a debt payment is credited back by the paid
    sub-amount: the debt itself already left the balance when it was closed
    or reduced.
    """
    if is_goal_expense(operation, goal_keys):
        return None

    native = operation.signed_amount()
    base = to_base(native, operation.currency, settings)
    if operation.is_income:
        return OperationDelta(base, native, operation.currency)

    payment = operation.debt_payment_amount
    if payment > 0:
        base += to_base(payment, operation.currency, settings)
        native += payment
    return OperationDelta(base, native, operation.currency)


def summarize_operations(
    operations: Iterable[Operation], goal_titles: Iterable, settings: Settings
) -> float:
    goal_keys = build_goal_category_set(goal_titles)
    total = 0.0
    for operation in operations:
        delta = operation_delta(operation, goal_keys, settings)
        if delta is not None:
            total += delta.base
    return total


@dataclass(frozen=True)
class BalanceSummary:
    operations_balance: float
    debts: DebtSummary

    @property
    def balance(self) -> float:
        return self.operations_balance + self.debts.balance_effect

    @property
    def net_balance(self) -> float:
        return self.balance - self.debts.borrowed + self.debts.lent

    @property
    def borrowed(self) -> float:
        return self.debts.borrowed

    @property
    def lent(self) -> float:
        return self.debts.lent

    def to_dict(self) -> dict:
        return {
            "balance": self.balance,
            "net_balance": self.net_balance,
            "operations_balance": self.operations_balance,
            "borrowed": self.borrowed,
            "lent": self.lent,
            "debt_balance_effect": self.debts.balance_effect,
        }


def calculate_balance(
    operations: Iterable[Operation],
    debts: Iterable[Debt],
    goals: Iterable,
    settings: Settings,
) -> BalanceSummary:
    return BalanceSummary(
        operations_balance=summarize_operations(operations, goals, settings),
        debts=summarize_debts(debts, settings),
    )
