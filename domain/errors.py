class DomainError(Exception):
    """Base class for ledger business-rule violations."""


class NotFoundError(DomainError):
    pass


class DuplicateError(DomainError):
    pass


class AccessDeniedError(DomainError):
    pass


class InsufficientFundsError(DomainError):
    """Raised when a wallet cannot cover an outgoing amount.

    Carries the amount that was available in the requested currency so the
    caller can show it to the user.
    """

    def __init__(self, wallet: str, available: float, currency: str) -> None:
        self.wallet = wallet
        self.available = float(available)
        self.currency = str(currency)
        super().__init__(
            f"Insufficient funds in wallet {wallet}: available "
            f"{max(0.0, self.available):.2f} {self.currency}"
        )
