from __future__ import annotations

from typing import Protocol

from domain.currency import Settings
from domain.debts import Debt
from domain.goals import Goal
from domain.operations import Operation
from domain.wallets import Wallet


class Storage(Protocol):
    """Low-level storage contract for persistence adapters."""

    def get_settings(self) -> Settings:
        ...

    def save_settings(self, settings: Settings) -> None:
        ...

    def get_wallets(self) -> list[Wallet]:
        ...

    def save_wallet(self, wallet: Wallet) -> None:
        ...

    def get_operations(self) -> list[Operation]:
        ...

    def save_operation(self, operation: Operation) -> None:
        ...

    def delete_operation(self, operation_id: str) -> bool:
        ...

    def get_debts(self) -> list[Debt]:
        ...

    def save_debt(self, debt: Debt) -> None:
        ...

    def delete_debt(self, debt_id: str) -> bool:
        ...

    def get_goals(self) -> list[Goal]:
        ...

    def save_goal(self, goal: Goal) -> None:
        ...

    def delete_goal(self, goal_id: str) -> bool:
        ...
