import logging
import os
from collections.abc import Iterable

from openpyxl import Workbook

from domain.operations import Operation
from domain.reports import WalletReport

logger = logging.getLogger(__name__)

OPERATION_HEADERS = [
    "occurred_at",
    "type",
    "wallet",
    "category",
    "amount",
    "currency",
    "debt_payment",
    "transfer_id",
    "comment",
]


def _safe_str(value):
    return "" if value is None else str(value)


def _save_workbook(wb: Workbook, filepath: str) -> None:
    directory = os.path.dirname(filepath)
    if directory:
        os.makedirs(directory, exist_ok=True)
    wb.save(filepath)
    wb.close()


def report_to_xlsx(
    report: WalletReport, filepath: str, operations: Iterable[Operation] = ()
) -> None:
    """Export wallet balances, the balance summary and (optionally) operations to XLSX."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Wallets"
    base = report.base_currency
    ws.append(["Wallet", f"Balance ({base})", "Native", "Status"])
    for wallet, base_amount, native, status in report.wallet_rows():
        ws.append([wallet, round(base_amount, 2), native, status])
    ws.append(["TOTAL", round(report.total_base(), 2), "", ""])

    summary_ws = wb.create_sheet("Summary")
    summary_ws.append(["Metric", f"Amount ({base})"])
    summary = report.summary
    for label, value in (
        ("Operations", summary.operations_balance),
        ("Debt effect", summary.debts.balance_effect),
        ("Balance", summary.balance),
        ("Borrowed", summary.borrowed),
        ("Lent", summary.lent),
        ("Net balance", summary.net_balance),
    ):
        summary_ws.append([label, round(value, 2)])

    operations = list(operations)
    if operations:
        ops_ws = wb.create_sheet("Operations")
        ops_ws.append(OPERATION_HEADERS)
        for operation in sorted(operations, key=lambda op: op.occurred_at):
            ops_ws.append(
                [
                    operation.occurred_at.isoformat(),
                    operation.type.value,
                    operation.wallet,
                    operation.category,
                    operation.amount,
                    operation.currency.value,
                    operation.source.debt_payment,
                    _safe_str(operation.source.transfer_id),
                    _safe_str(operation.comment),
                ]
            )

    _save_workbook(wb, filepath)
    logger.info("Ledger exported to XLSX path=%s operations=%s", filepath, len(operations))
