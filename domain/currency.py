import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum

from .validation import safe_amount


class Currency(str, Enum):
    USD = "USD"
    RUB = "RUB"
    EUR = "EUR"
    GEL = "GEL"


SUPPORTED_CURRENCIES: tuple[Currency, ...] = tuple(Currency)
ANCHOR_CURRENCY = Currency.USD


def is_supported_currency(value) -> bool:
    if isinstance(value, Currency):
        return True
    if not isinstance(value, str):
        return False
    return value.strip().upper() in Currency.__members__


def sanitize_currency(value, fallback: "Currency | str" = ANCHOR_CURRENCY) -> Currency:
    """Map arbitrary input onto a supported currency.

    Unsupported or empty values resolve to ``fallback`` instead of raising.
    """
    if isinstance(value, Currency):
        return value
    if is_supported_currency(value):
        return Currency(value.strip().upper())
    if isinstance(fallback, Currency):
        return fallback
    return Currency(str(fallback).strip().upper())


def _valid_rate(value) -> float | None:
    try:
        rate = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(rate) or rate <= 0:
        return None
    return rate


def _normalize_rates(
    rates: Mapping | None, base: Currency
) -> dict[Currency, float]:
    normalized = {currency: 1.0 for currency in SUPPORTED_CURRENCIES}
    for key, value in (rates or {}).items():
        if not is_supported_currency(key):
            continue
        rate = _valid_rate(value)
        if rate is None:
            continue
        normalized[sanitize_currency(key)] = rate
    base_rate = normalized[base]
    if base_rate != 1.0:
        normalized = {currency: rate / base_rate for currency, rate in normalized.items()}
    normalized[base] = 1.0
    return normalized


@dataclass(frozen=True)
class Settings:
    """Read-only snapshot of the base currency and its rate table.

    ``rates[c]`` is the number of base-currency units worth one unit of ``c``.
    The table is normalized on construction so that the base rate is exactly
    1; the ratios between the other currencies are preserved.
    """

    base_currency: Currency = ANCHOR_CURRENCY
    rates: dict[Currency, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        base = sanitize_currency(self.base_currency, ANCHOR_CURRENCY)
        object.__setattr__(self, "base_currency", base)
        object.__setattr__(self, "rates", _normalize_rates(self.rates, base))

    def rate(self, currency) -> float:
        code = sanitize_currency(currency, self.base_currency)
        if code == self.base_currency:
            return 1.0
        return self.rates.get(code, 1.0)

    def rebased(self, base_currency) -> "Settings":
        return Settings(base_currency=base_currency, rates=self.rates)

    def with_rates(self, update: Mapping, anchor=ANCHOR_CURRENCY) -> "Settings":
        """Overlay rates quoted as "anchor units per 1 unit" onto the table."""
        anchored = self.rebased(anchor)
        merged = dict(anchored.rates)
        for key, value in update.items():
            if not is_supported_currency(key):
                continue
            rate = _valid_rate(value)
            if rate is not None:
                merged[sanitize_currency(key)] = rate
        return Settings(base_currency=anchor, rates=merged).rebased(self.base_currency)

    def to_dict(self) -> dict:
        return {
            "base_currency": self.base_currency.value,
            "rates": {currency.value: rate for currency, rate in self.rates.items()},
        }


def _require_settings(settings: Settings | None) -> Settings:
    if settings is None:
        raise ValueError("Settings snapshot is required for currency conversion")
    return settings


def to_base(amount, currency, settings: Settings) -> float:
    """Convert ``amount`` in ``currency`` into the base currency.

    Unsupported currencies are treated as the base currency.
    """
    settings = _require_settings(settings)
    value = safe_amount(amount)
    code = sanitize_currency(currency, settings.base_currency)
    if code == settings.base_currency:
        return value
    return value * settings.rate(code)


def from_base(amount, currency, settings: Settings) -> float:
    settings = _require_settings(settings)
    value = safe_amount(amount)
    code = sanitize_currency(currency, settings.base_currency)
    if code == settings.base_currency:
        return value
    return value / settings.rate(code)


def convert(amount, from_currency, to_currency, settings: Settings) -> float:
    settings = _require_settings(settings)
    source = sanitize_currency(from_currency, settings.base_currency)
    target = sanitize_currency(to_currency, settings.base_currency)
    if source == target:
        return safe_amount(amount)
    return from_base(to_base(amount, source, settings), target, settings)
