from __future__ import annotations

import argparse
import logging
import sys

import config
from app.services import RatesService
from app.use_cases import (
    ArchiveWallet,
    CloseDebt,
    CreateDebt,
    CreateGoal,
    CreateTransfer,
    CreateWallet,
    DeleteDebt,
    DeleteGoal,
    DeleteOperation,
    GenerateWalletReport,
    GetGoals,
    RecordOperation,
    Role,
    SyncRates,
    UpdateRates,
)
from bootstrap import bootstrap_repository
from domain.currency import SUPPORTED_CURRENCIES
from domain.errors import DomainError
from infrastructure.repositories import LedgerRepository
from utils.excel_utils import report_to_xlsx

logger = logging.getLogger(__name__)

CURRENCY_CODES = [currency.value for currency in SUPPORTED_CURRENCIES]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ledger", description="Multi-currency community ledger."
    )
    parser.add_argument(
        "--role",
        default=Role.ACCOUNTANT.value,
        choices=[role.value for role in Role],
        help="Role of the current user (only accountants may change data)",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    balance = commands.add_parser("balance", help="Show balance summary and wallets")
    balance.add_argument(
        "--in",
        dest="in_currency",
        choices=CURRENCY_CODES,
        help="Also show the balance in this currency",
    )

    wallets = commands.add_parser("wallets", help="Show per-wallet balances")
    wallets.add_argument("--active-only", action="store_true")

    add_wallet = commands.add_parser("add-wallet", help="Create a wallet")
    add_wallet.add_argument("name")
    add_wallet.add_argument("--currency", choices=CURRENCY_CODES)

    archive_wallet = commands.add_parser("archive-wallet", help="Archive a wallet")
    archive_wallet.add_argument("name")

    add_operation = commands.add_parser("add-operation", help="Record income or expense")
    add_operation.add_argument("type", choices=["income", "expense"])
    add_operation.add_argument("amount", type=float)
    add_operation.add_argument("category")
    add_operation.add_argument("--wallet", required=True)
    add_operation.add_argument("--currency", choices=CURRENCY_CODES)
    add_operation.add_argument("--comment")
    add_operation.add_argument("--date", help="YYYY-MM-DD or ISO timestamp")

    delete_operation = commands.add_parser(
        "delete-operation", help="Delete an operation and undo its debt payments"
    )
    delete_operation.add_argument("operation_id")

    add_debt = commands.add_parser("add-debt", help="Register a debt")
    add_debt.add_argument("type", choices=["borrowed", "lent"])
    add_debt.add_argument("amount", type=float)
    add_debt.add_argument("counterpart")
    add_debt.add_argument("--wallet", required=True)
    add_debt.add_argument("--currency", choices=CURRENCY_CODES)
    add_debt.add_argument("--comment")
    add_debt.add_argument(
        "--existing", action="store_true", help="Historical debt, no effect on cash"
    )

    close_debt = commands.add_parser("close-debt", help="Close a debt")
    close_debt.add_argument("debt_id")

    delete_debt = commands.add_parser("delete-debt", help="Delete a debt")
    delete_debt.add_argument("debt_id")

    add_goal = commands.add_parser("add-goal", help="Create a savings goal")
    add_goal.add_argument("title")
    add_goal.add_argument("target", type=float)
    add_goal.add_argument("--currency", choices=CURRENCY_CODES)

    delete_goal = commands.add_parser("delete-goal", help="Delete a goal and its savings")
    delete_goal.add_argument("goal", help="Goal id or title")

    commands.add_parser("goals", help="Show savings goals")

    transfer = commands.add_parser("transfer", help="Move money between wallets")
    transfer.add_argument("from_wallet")
    transfer.add_argument("to_wallet")
    transfer.add_argument("amount", type=float)
    transfer.add_argument("--from-currency", choices=CURRENCY_CODES)
    transfer.add_argument("--to-currency", choices=CURRENCY_CODES)
    transfer.add_argument("--comment")

    set_rate = commands.add_parser("set-rate", help="Set USD per 1 unit of a currency")
    set_rate.add_argument("currency", choices=CURRENCY_CODES)
    set_rate.add_argument("rate", type=float)
    set_rate.add_argument("--base", choices=CURRENCY_CODES, help="Also change base currency")

    commands.add_parser("sync-rates", help="Refresh rates from the online source")

    export = commands.add_parser("export-xlsx", help="Export balances to XLSX")
    export.add_argument("path")
    export.add_argument("--with-operations", action="store_true")

    return parser


def run(args: argparse.Namespace, repository: LedgerRepository) -> int:
    command = args.command
    role = args.role

    if command == "balance":
        report = GenerateWalletReport(repository).execute()
        print(report.as_table())
        if args.in_currency:
            print(f"Balance in {args.in_currency}: {report.total_in(args.in_currency):.2f}")
    elif command == "wallets":
        report = GenerateWalletReport(repository).execute(include_inactive=not args.active_only)
        print(report.wallets_table())
    elif command == "add-wallet":
        wallet = CreateWallet(repository, role).execute(name=args.name, currency=args.currency)
        print(f"Wallet saved: {wallet.name}")
    elif command == "archive-wallet":
        wallet = ArchiveWallet(repository, role).execute(args.name)
        print(f"Wallet archived: {wallet.name}")
    elif command == "add-operation":
        operation = RecordOperation(repository, role).execute(
            type=args.type,
            amount=args.amount,
            category=args.category,
            wallet=args.wallet,
            currency=args.currency,
            comment=args.comment,
            occurred_at=args.date,
        )
        print(f"Operation recorded: {operation.id}")
        if operation.debt_payment_amount > 0:
            print(
                f"Applied to debts: {operation.debt_payment_amount:.2f} "
                f"{operation.currency.value}"
            )
    elif command == "delete-operation":
        for operation in DeleteOperation(repository, role).execute(args.operation_id):
            print(f"Operation deleted: {operation.id}")
    elif command == "add-debt":
        debt = CreateDebt(repository, role).execute(
            type=args.type,
            amount=args.amount,
            counterpart=args.counterpart,
            wallet=args.wallet,
            currency=args.currency,
            comment=args.comment,
            existing=args.existing,
        )
        print(f"Debt registered: {debt.id}")
    elif command == "close-debt":
        debt = CloseDebt(repository, role).execute(args.debt_id)
        print(f"Debt closed: {debt.id}")
    elif command == "delete-debt":
        debt = DeleteDebt(repository, role).execute(args.debt_id)
        print(f"Debt deleted: {debt.id}")
    elif command == "add-goal":
        goal = CreateGoal(repository, role).execute(
            title=args.title, target_amount=args.target, currency=args.currency
        )
        print(f"Goal created: {goal.title}")
    elif command == "delete-goal":
        goal, removed = DeleteGoal(repository, role).execute(args.goal)
        print(f"Goal deleted: {goal.title} ({len(removed)} operations removed)")
    elif command == "goals":
        for goal in GetGoals(repository).execute():
            print(
                f"{goal.title}: {goal.current_amount:.2f} / {goal.target_amount:.2f} "
                f"({goal.status.value}) [{goal.id}]"
            )
    elif command == "transfer":
        transfer = CreateTransfer(repository, role).execute(
            from_wallet=args.from_wallet,
            to_wallet=args.to_wallet,
            amount=args.amount,
            from_currency=args.from_currency,
            to_currency=args.to_currency,
            comment=args.comment,
        )
        print(
            f"Transfer {transfer.id}: {transfer.amount:.2f} {transfer.from_currency.value} -> "
            f"{transfer.converted_amount:.2f} {transfer.to_currency.value}"
        )
    elif command == "set-rate":
        settings = UpdateRates(repository, role).execute(
            {args.currency: args.rate}, base_currency=args.base
        )
        print(f"Base currency: {settings.base_currency.value}")
    elif command == "sync-rates":
        update = SyncRates(repository, RatesService(), role).execute()
        if update.ok:
            print("Rates updated")
        else:
            print(f"Rates not refreshed: {update.error}")
    elif command == "export-xlsx":
        report = GenerateWalletReport(repository).execute()
        operations = repository.load_operations() if args.with_operations else ()
        report_to_xlsx(report, args.path, operations)
        print(f"Exported to {args.path}")
    return 0


def main(argv: list[str] | None = None, repository: LedgerRepository | None = None) -> int:
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    args = build_parser().parse_args(argv)
    if repository is None:
        repository = bootstrap_repository()
    try:
        return run(args, repository)
    except (DomainError, ValueError) as exc:
        logger.warning("Command %s failed: %s", args.command, exc)
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
