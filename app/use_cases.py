import logging
from collections.abc import Mapping
from dataclasses import replace
from enum import Enum

from domain.currency import ANCHOR_CURRENCY, Settings, convert, sanitize_currency, to_base
from domain.debts import Debt, DebtStatus, DebtType
from domain.errors import (
    AccessDeniedError,
    DuplicateError,
    InsufficientFundsError,
    NotFoundError,
)
from domain.goals import Goal, recalculate_goal_progress
from domain.ledger import BalanceSummary, calculate_balance
from domain.operations import (
    DebtAdjustment,
    Operation,
    OperationType,
    append_debt_adjustments,
    append_debt_payment,
)
from domain.reports import WalletReport
from domain.transfers import Transfer
from domain.validation import clean_text, normalize_key, require_positive_amount
from domain.wallets import Wallet, WalletBalances, build_wallet_balances
from infrastructure.repositories import LedgerRepository

from .services import RatesService, RatesUpdate

logger = logging.getLogger(__name__)

TRANSFER_EPSILON = 0.009
SETTLED_EPSILON = 1e-9


class Role(str, Enum):
    ADMIN = "admin"
    ACCOUNTANT = "accountant"
    ABBOT = "abbot"


def _ensure_accountant(role) -> None:
    value = getattr(role, "value", role)
    if value != Role.ACCOUNTANT.value:
        raise AccessDeniedError(f"Role '{value}' cannot modify ledger data")


def _require_wallet(repository: LedgerRepository, name: str, label: str = "Wallet") -> Wallet:
    wallet = repository.find_wallet(name)
    if wallet is None:
        raise NotFoundError(f"{label} not found: {clean_text(name)}")
    return wallet


def _recalculate_goals(repository: LedgerRepository, settings: Settings) -> None:
    goals = repository.load_goals()
    if not goals:
        return
    for goal in recalculate_goal_progress(goals, repository.load_operations(), settings):
        repository.save_goal(goal)


class CalculateBalance:
    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    def execute(self) -> BalanceSummary:
        snapshot = self._repository.snapshot()
        return calculate_balance(
            snapshot.operations, snapshot.debts, snapshot.goals, snapshot.settings
        )


class GetWalletBalances:
    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    def execute(self, include_inactive: bool = True) -> WalletBalances:
        snapshot = self._repository.snapshot()
        balances = build_wallet_balances(
            snapshot.wallets,
            snapshot.operations,
            snapshot.debts,
            snapshot.goals,
            snapshot.settings,
        )
        if include_inactive:
            return balances
        return WalletBalances(entry for entry in balances.entries() if entry.active)


class GenerateWalletReport:
    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    def execute(self, include_inactive: bool = True) -> WalletReport:
        snapshot = self._repository.snapshot()
        balances = build_wallet_balances(
            snapshot.wallets,
            snapshot.operations,
            snapshot.debts,
            snapshot.goals,
            snapshot.settings,
        )
        summary = calculate_balance(
            snapshot.operations, snapshot.debts, snapshot.goals, snapshot.settings
        )
        return WalletReport(
            balances, summary, snapshot.settings, include_inactive=include_inactive
        )


class CreateWallet:
    def __init__(self, repository: LedgerRepository, role):
        self._repository = repository
        self._role = role

    def execute(self, *, name: str, currency: str | None = None) -> Wallet:
        """Create a wallet, or reactivate an archived one with the same name."""
        _ensure_accountant(self._role)
        wallet = Wallet(name=name, currency=currency or None)
        with self._repository.transaction():
            existing = self._repository.find_wallet(wallet.name)
            if existing is not None and existing.is_active:
                raise DuplicateError(f"Wallet already exists: {existing.name}")
            if existing is not None:
                wallet = replace(existing, is_active=True, currency=wallet.currency or existing.currency)
            self._repository.save_wallet(wallet)
        logger.info("Wallet saved name=%s currency=%s", wallet.name, wallet.currency)
        return wallet


class ArchiveWallet:
    def __init__(self, repository: LedgerRepository, role):
        self._repository = repository
        self._role = role

    def execute(self, name: str) -> Wallet:
        _ensure_accountant(self._role)
        with self._repository.transaction():
            wallet = _require_wallet(self._repository, name)
            archived = replace(wallet, is_active=False)
            self._repository.save_wallet(archived)
        logger.info("Wallet archived name=%s", archived.name)
        return archived


class RecordOperation:
    def __init__(self, repository: LedgerRepository, role):
        self._repository = repository
        self._role = role

    def execute(
        self,
        *,
        type: str,
        amount: float,
        category: str,
        wallet: str,
        currency: str | None = None,
        comment: str | None = None,
        occurred_at=None,
    ) -> Operation:
        """Persist an income or expense.

        An expense whose category names the lender of open borrowed debts in
        the same wallet and currency pays them off, oldest first. Each debt
        touched is recorded on the operation so the payment can be undone.
        """
        _ensure_accountant(self._role)
        try:
            op_type = OperationType(clean_text(type).lower())
        except ValueError as exc:
            raise ValueError(f"Unknown operation type: {type}") from exc
        amount = require_positive_amount(amount)
        category = clean_text(category)
        if not category:
            raise ValueError("Category is required")

        with self._repository.transaction():
            target = _require_wallet(self._repository, wallet)
            if not target.is_active:
                raise ValueError("Cannot record operation for archived wallet")
            settings = self._repository.load_settings()
            operation = Operation(
                type=op_type,
                amount=amount,
                currency=sanitize_currency(currency or target.currency, settings.base_currency),
                category=category,
                wallet=target.name,
                comment=comment,
                occurred_at=occurred_at,
            )
            if operation.is_expense:
                adjustments, applied = self._apply_to_debts(operation)
                if adjustments:
                    source = append_debt_adjustments(operation.source, adjustments)
                    if applied > 0:
                        source = append_debt_payment(source, applied)
                    operation = replace(operation, source=source)
            self._repository.save_operation(operation)
            _recalculate_goals(self._repository, settings)

        logger.info(
            "Operation recorded id=%s type=%s wallet=%s amount=%s currency=%s category=%s",
            operation.id,
            operation.type.value,
            operation.wallet,
            operation.amount,
            operation.currency.value,
            operation.category,
        )
        return operation

    def _apply_to_debts(self, operation: Operation) -> tuple[list[DebtAdjustment], float]:
        """Pay down matching debts and return the adjustments made.

        The second value is the part paid to debts that were counted in the
        cash balance; historical debts never were, so paying them is a plain
        expense.
        """
        key = normalize_key(operation.category)
        wallet_key = normalize_key(operation.wallet)
        debts = sorted(
            (
                debt
                for debt in self._repository.load_debts()
                if debt.is_open
                and debt.type is DebtType.BORROWED
                and debt.currency == operation.currency
                and normalize_key(debt.wallet) == wallet_key
                and normalize_key(debt.counterpart) == key
            ),
            key=lambda debt: debt.registered_at,
        )
        adjustments: list[DebtAdjustment] = []
        applied = 0.0
        remaining = operation.amount
        for debt in debts:
            if remaining <= SETTLED_EPSILON:
                break
            payment = min(remaining, debt.amount)
            left = debt.amount - payment
            closed = left <= SETTLED_EPSILON
            if closed:
                updated = replace(debt, status=DebtStatus.CLOSED)
            else:
                updated = replace(debt, amount=left)
            self._repository.save_debt(updated)
            adjustments.append(DebtAdjustment(debt_id=debt.id, amount=payment, closed=closed))
            if not debt.existing:
                applied += payment
            remaining -= payment
            logger.info(
                "Debt payment applied debt_id=%s payment=%s left=%s existing=%s",
                debt.id,
                payment,
                max(left, 0.0),
                debt.existing,
            )
        return adjustments, applied


class DeleteOperation:
    def __init__(self, repository: LedgerRepository, role):
        self._repository = repository
        self._role = role

    def execute(self, operation_id: str) -> list[Operation]:
        """Delete an operation and undo its side effects.

        Both legs of a transfer go together. Debt payments recorded on a
        deleted expense are given back to the debts they reduced or closed.
        """
        _ensure_accountant(self._role)
        with self._repository.transaction():
            operations = self._repository.load_operations()
            operation = next((item for item in operations if item.id == str(operation_id)), None)
            if operation is None:
                raise NotFoundError(f"Operation not found: {operation_id}")
            transfer_id = operation.source.transfer_id
            if transfer_id is None:
                removed = [operation]
            else:
                removed = [item for item in operations if item.source.transfer_id == transfer_id]

            for item in removed:
                self._repository.delete_operation(item.id)
                if item.is_expense:
                    self._restore_debts(item)
            _recalculate_goals(self._repository, self._repository.load_settings())

        for item in removed:
            logger.info(
                "Operation deleted id=%s type=%s wallet=%s amount=%s",
                item.id,
                item.type.value,
                item.wallet,
                item.amount,
            )
        return removed

    def _restore_debts(self, operation: Operation) -> None:
        adjustments = operation.source.debt_adjustments
        if not adjustments:
            if operation.debt_payment_amount > 0:
                logger.warning(
                    "Debt payment of operation id=%s has no per-debt record, debts left unchanged",
                    operation.id,
                )
            return
        debts = {debt.id: debt for debt in self._repository.load_debts()}
        for adjustment in adjustments:
            debt = debts.get(adjustment.debt_id)
            if debt is None:
                logger.warning(
                    "Cannot restore payment to missing debt debt_id=%s operation_id=%s",
                    adjustment.debt_id,
                    operation.id,
                )
                continue
            if adjustment.closed:
                restored = replace(debt, status=DebtStatus.OPEN)
            else:
                restored = replace(debt, amount=debt.amount + adjustment.amount)
            self._repository.save_debt(restored)
            logger.info(
                "Debt payment restored debt_id=%s amount=%s reopened=%s",
                debt.id,
                adjustment.amount,
                adjustment.closed,
            )


class CreateDebt:
    def __init__(self, repository: LedgerRepository, role):
        self._repository = repository
        self._role = role

    def execute(
        self,
        *,
        type: str,
        amount: float,
        counterpart: str,
        wallet: str,
        currency: str | None = None,
        comment: str | None = None,
        existing: bool = False,
        registered_at=None,
    ) -> Debt:
        _ensure_accountant(self._role)
        try:
            debt_type = DebtType(clean_text(type).lower())
        except ValueError as exc:
            raise ValueError(f"Unknown debt type: {type}") from exc
        amount = require_positive_amount(amount)
        counterpart = clean_text(counterpart)
        if not counterpart:
            if debt_type is DebtType.BORROWED:
                raise ValueError("Debt requires a lender")
            raise ValueError("Debt requires a recipient")

        with self._repository.transaction():
            target = _require_wallet(self._repository, wallet)
            settings = self._repository.load_settings()
            debt = Debt(
                type=debt_type,
                amount=amount,
                currency=sanitize_currency(currency or target.currency, settings.base_currency),
                wallet=target.name,
                counterpart=counterpart,
                existing=existing is True,
                comment=comment,
                registered_at=registered_at,
            )
            self._repository.save_debt(debt)
        logger.info(
            "Debt created id=%s type=%s wallet=%s amount=%s currency=%s existing=%s",
            debt.id,
            debt.type.value,
            debt.wallet,
            debt.amount,
            debt.currency.value,
            debt.existing,
        )
        return debt


class CloseDebt:
    def __init__(self, repository: LedgerRepository, role):
        self._repository = repository
        self._role = role

    def execute(self, debt_id: str) -> Debt:
        _ensure_accountant(self._role)
        with self._repository.transaction():
            debt = next(
                (item for item in self._repository.load_debts() if item.id == str(debt_id)),
                None,
            )
            if debt is None:
                raise NotFoundError(f"Debt not found: {debt_id}")
            closed = replace(debt, status=DebtStatus.CLOSED)
            self._repository.save_debt(closed)
        logger.info("Debt closed id=%s", closed.id)
        return closed


class DeleteDebt:
    def __init__(self, repository: LedgerRepository, role):
        self._repository = repository
        self._role = role

    def execute(self, debt_id: str) -> Debt:
        """Delete a debt together with the operations generated for it."""
        _ensure_accountant(self._role)
        with self._repository.transaction():
            debt = next(
                (item for item in self._repository.load_debts() if item.id == str(debt_id)),
                None,
            )
            if debt is None:
                raise NotFoundError(f"Debt not found: {debt_id}")
            linked = [
                operation
                for operation in self._repository.load_operations()
                if operation.source.debt_id == debt.id
            ]
            for operation in linked:
                self._repository.delete_operation(operation.id)
            self._repository.delete_debt(debt.id)
            _recalculate_goals(self._repository, self._repository.load_settings())
        logger.info("Debt deleted id=%s linked_operations=%s", debt.id, len(linked))
        return debt


class CreateGoal:
    def __init__(self, repository: LedgerRepository, role):
        self._repository = repository
        self._role = role

    def execute(self, *, title: str, target_amount: float, currency: str | None = None) -> Goal:
        _ensure_accountant(self._role)
        title = clean_text(title)
        if not title:
            raise ValueError("Goal title is required")
        target_amount = require_positive_amount(target_amount, "Target amount")

        with self._repository.transaction():
            if any(goal.key == normalize_key(title) for goal in self._repository.load_goals()):
                raise DuplicateError(f"Goal already exists: {title}")
            settings = self._repository.load_settings()
            goal_currency = sanitize_currency(currency, settings.base_currency)
            goal = Goal(
                title=title,
                target_amount=to_base(target_amount, goal_currency, settings),
                currency=goal_currency,
            )
            self._repository.save_goal(goal)
            _recalculate_goals(self._repository, settings)
        logger.info("Goal created id=%s title=%s target=%s", goal.id, goal.title, goal.target_amount)
        return next(item for item in self._repository.load_goals() if item.id == goal.id)


class GetGoals:
    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    def execute(self) -> list[Goal]:
        return self._repository.load_goals()


class DeleteGoal:
    def __init__(self, repository: LedgerRepository, role):
        self._repository = repository
        self._role = role

    def execute(self, goal: str) -> tuple[Goal, list[Operation]]:
        """Delete a goal, found by id or title, and the expenses saved toward it.

        The saved expenses never counted against the balance, so they are
        removed with the goal instead of turning into ordinary expenses.
        """
        _ensure_accountant(self._role)
        with self._repository.transaction():
            found = next(
                (
                    item
                    for item in self._repository.load_goals()
                    if item.id == str(goal) or item.key == normalize_key(goal)
                ),
                None,
            )
            if found is None:
                raise NotFoundError(f"Goal not found: {goal}")
            removed = [
                operation
                for operation in self._repository.load_operations()
                if operation.is_expense and normalize_key(operation.category) == found.key
            ]
            for operation in removed:
                self._repository.delete_operation(operation.id)
            self._repository.delete_goal(found.id)
        logger.info(
            "Goal deleted id=%s title=%s removed_operations=%s",
            found.id,
            found.title,
            len(removed),
        )
        return found, removed


class CreateTransfer:
    def __init__(self, repository: LedgerRepository, role):
        self._repository = repository
        self._role = role

    def execute(
        self,
        *,
        from_wallet: str,
        to_wallet: str,
        amount: float,
        from_currency: str | None = None,
        to_currency: str | None = None,
        comment: str | None = None,
        occurred_at=None,
    ) -> Transfer:
        """Move money between wallets as a paired expense and income.

        The balance check and both inserts run in one repository transaction,
        so either both operations are stored or none.
        """
        _ensure_accountant(self._role)
        if normalize_key(from_wallet) == normalize_key(to_wallet):
            raise ValueError("Transfer wallets must be different")
        amount = require_positive_amount(amount, "Transfer amount")

        with self._repository.transaction():
            source = _require_wallet(self._repository, from_wallet, "Source wallet")
            target = _require_wallet(self._repository, to_wallet, "Target wallet")
            if not source.is_active or not target.is_active:
                raise ValueError("Transfers are allowed only between active wallets")

            settings = self._repository.load_settings()
            source_currency = sanitize_currency(
                from_currency or source.currency, settings.base_currency
            )
            target_currency = sanitize_currency(to_currency or target.currency, settings.base_currency)

            balances = build_wallet_balances(
                [source],
                self._repository.load_operations(),
                self._repository.load_debts(),
                self._repository.load_goals(),
                settings,
            )
            entry = balances.get(source.name)
            available = entry.available(source_currency) if entry is not None else 0.0
            if available - amount < -TRANSFER_EPSILON:
                logger.warning(
                    "Transfer rejected wallet=%s requested=%s available=%s currency=%s",
                    source.name,
                    amount,
                    available,
                    source_currency.value,
                )
                raise InsufficientFundsError(source.name, available, source_currency.value)

            converted = round(convert(amount, source_currency, target_currency, settings), 2)
            transfer = Transfer(
                from_wallet=source.name,
                to_wallet=target.name,
                amount=amount,
                from_currency=source_currency,
                to_currency=target_currency,
                converted_amount=converted,
                comment=comment,
                occurred_at=occurred_at,
            )
            expense, income = transfer.operations()
            self._repository.save_operation(expense)
            self._repository.save_operation(income)

        logger.info(
            "Transfer created transfer_id=%s from_wallet=%s to_wallet=%s amount=%s %s converted=%s %s",
            transfer.id,
            transfer.from_wallet,
            transfer.to_wallet,
            transfer.amount,
            transfer.from_currency.value,
            transfer.converted_amount,
            transfer.to_currency.value,
        )
        return transfer


class UpdateRates:
    def __init__(self, repository: LedgerRepository, role):
        self._repository = repository
        self._role = role

    def execute(
        self,
        rates: Mapping | None = None,
        *,
        anchor=ANCHOR_CURRENCY,
        base_currency: str | None = None,
    ) -> Settings:
        """Overlay ``rates`` (anchor units per 1 unit) and optionally change the base."""
        _ensure_accountant(self._role)
        with self._repository.transaction():
            settings = self._repository.load_settings()
            if rates:
                settings = settings.with_rates(rates, anchor=sanitize_currency(anchor))
            if base_currency:
                settings = settings.rebased(sanitize_currency(base_currency, settings.base_currency))
            self._repository.save_settings(settings)
        logger.info(
            "Rates updated base=%s rates=%s",
            settings.base_currency.value,
            {currency.value: rate for currency, rate in settings.rates.items()},
        )
        return settings


class SyncRates:
    def __init__(self, repository: LedgerRepository, rates_service: RatesService, role):
        self._repository = repository
        self._rates_service = rates_service
        self._role = role

    def execute(self) -> RatesUpdate:
        _ensure_accountant(self._role)
        current = self._repository.load_settings()
        update = self._rates_service.fetch_latest(fallback=current)
        if not update.ok:
            logger.warning("Rate sync degraded, using last known rates: %s", update.error)
        UpdateRates(self._repository, self._role).execute(update.rates, anchor=ANCHOR_CURRENCY)
        return update
