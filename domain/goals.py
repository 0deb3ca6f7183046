import math
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from enum import Enum

from .currency import ANCHOR_CURRENCY, Currency, Settings, sanitize_currency, to_base
from .operations import Operation
from .validation import clean_text, normalize_key


class GoalStatus(str, Enum):
    ACTIVE = "active"
    DONE = "done"


@dataclass(frozen=True)
class Goal:
    """Savings goal; amounts are kept in base currency.

    ``currency`` is the currency the target was entered in. An unsupported
    value falls back to USD here; the repositories pass the ledger base.
    """

    title: str
    target_amount: float
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    current_amount: float = 0.0
    status: GoalStatus = GoalStatus.ACTIVE
    currency: Currency = ANCHOR_CURRENCY

    def __post_init__(self) -> None:
        object.__setattr__(self, "title", clean_text(self.title))
        object.__setattr__(self, "id", str(self.id))
        status_raw = str(getattr(self.status, "value", self.status)).strip().lower()
        status = GoalStatus.DONE if status_raw == GoalStatus.DONE.value else GoalStatus.ACTIVE
        object.__setattr__(self, "status", status)
        object.__setattr__(self, "currency", sanitize_currency(self.currency, ANCHOR_CURRENCY))
        for name in ("target_amount", "current_amount"):
            try:
                value = float(getattr(self, name))
            except (TypeError, ValueError):
                value = 0.0
            object.__setattr__(self, name, value if math.isfinite(value) else 0.0)

    @property
    def key(self) -> str:
        return normalize_key(self.title)


def build_goal_category_set(goals: Iterable) -> frozenset[str]:
    """Normalized goal titles; accepts ``Goal`` records or plain titles."""
    keys = set()
    for goal in goals:
        title = goal.title if isinstance(goal, Goal) else goal
        key = normalize_key(title)
        if key:
            keys.add(key)
    return frozenset(keys)


def is_goal_expense(operation: Operation, goal_keys: frozenset[str]) -> bool:
    return operation.is_expense and normalize_key(operation.category) in goal_keys


def recalculate_goal_progress(
    goals: Iterable[Goal], operations: Iterable[Operation], settings: Settings
) -> list[Goal]:
    goals = list(goals)
    if not goals:
        return []

    progress: dict[str, float] = {}
    for operation in operations:
        if not operation.is_expense or operation.amount <= 0:
            continue
        key = normalize_key(operation.category)
        progress[key] = progress.get(key, 0.0) + to_base(
            operation.amount, operation.currency, settings
        )

    updated = []
    for goal in goals:
        current = progress.get(goal.key, 0.0)
        status = GoalStatus.DONE if current >= goal.target_amount else GoalStatus.ACTIVE
        updated.append(replace(goal, current_amount=current, status=status))
    return updated
