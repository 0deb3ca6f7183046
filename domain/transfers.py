import uuid
from dataclasses import dataclass, field
from datetime import datetime

from .currency import ANCHOR_CURRENCY, Currency, sanitize_currency
from .operations import Operation, OperationSource, OperationType
from .validation import clean_text, normalize_key, parse_timestamp, require_positive_amount

TRANSFER_CATEGORY = "Transfer between wallets"


@dataclass(frozen=True)
class Transfer:
    from_wallet: str
    to_wallet: str
    amount: float
    from_currency: Currency
    to_currency: Currency
    converted_amount: float
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    comment: str | None = None
    occurred_at: datetime | str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "from_wallet", clean_text(self.from_wallet))
        object.__setattr__(self, "to_wallet", clean_text(self.to_wallet))
        if not self.from_wallet:
            raise ValueError("Source wallet is required")
        if not self.to_wallet:
            raise ValueError("Target wallet is required")
        if normalize_key(self.from_wallet) == normalize_key(self.to_wallet):
            raise ValueError("Transfer wallets must be different")
        object.__setattr__(self, "amount", require_positive_amount(self.amount, "Transfer amount"))
        object.__setattr__(
            self,
            "converted_amount",
            require_positive_amount(self.converted_amount, "Converted amount"),
        )
        object.__setattr__(
            self, "from_currency", sanitize_currency(self.from_currency, ANCHOR_CURRENCY)
        )
        object.__setattr__(self, "to_currency", sanitize_currency(self.to_currency, ANCHOR_CURRENCY))
        object.__setattr__(self, "comment", clean_text(self.comment) or None)
        object.__setattr__(self, "occurred_at", parse_timestamp(self.occurred_at))

    def operations(self) -> tuple[Operation, Operation]:
        """The expense/income pair that represents this transfer in the ledger."""
        source = OperationSource(transfer_id=self.id)
        expense = Operation(
            type=OperationType.EXPENSE,
            amount=self.amount,
            currency=self.from_currency,
            category=TRANSFER_CATEGORY,
            wallet=self.from_wallet,
            comment=self.comment or f"Transfer to {self.to_wallet}",
            source=source,
            occurred_at=self.occurred_at,
        )
        income = Operation(
            type=OperationType.INCOME,
            amount=self.converted_amount,
            currency=self.to_currency,
            category=TRANSFER_CATEGORY,
            wallet=self.to_wallet,
            comment=self.comment or f"Transfer from {self.from_wallet}",
            source=source,
            occurred_at=self.occurred_at,
        )
        return expense, income
