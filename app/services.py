import json
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

import requests

import config
from domain.currency import ANCHOR_CURRENCY, SUPPORTED_CURRENCIES, Currency, Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RatesUpdate:
    """Outcome of a rate refresh; ``rates`` are USD per 1 unit of currency."""

    rates: Dict[Currency, float]
    updated_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def to_usd_per_unit(rate) -> float:
    try:
        value = float(rate)
    except (TypeError, ValueError):
        return 1.0
    if not math.isfinite(value) or value <= 0:
        return 1.0
    return round(1 / value, 6)


class RatesService:
    """Fetches exchange rates from an online source.

    Quotes come as "units per 1 USD" and are turned into "USD per 1 unit".
    The last successful table is cached in ``cache_path`` and reused when the
    network is unavailable, so callers always get a usable rate table.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        cache_path: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        self._url = url or config.RATES_API_URL
        self._timeout = config.RATES_TIMEOUT if timeout is None else timeout
        self._cache_path = Path(cache_path or config.RATES_CACHE_PATH)
        self._session = session or requests.Session()

    def fetch_latest(self, fallback: Optional[Settings] = None) -> RatesUpdate:
        try:
            response = self._session.get(
                self._url,
                headers={"User-Agent": "community-ledger"},
                timeout=self._timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as e:
            logger.warning("Network error fetching rates: %s", e)
            return self._fallback(f"Network error: {e}", fallback)
        except ValueError as e:
            logger.warning("Invalid JSON in rates response: %s", e)
            return self._fallback(f"Invalid response: {e}", fallback)

        quotes = payload.get("rates") if isinstance(payload, dict) else None
        if not isinstance(quotes, dict) or payload.get("success") is False:
            logger.warning("Rates response has no usable rates: %s", payload)
            return self._fallback("Malformed rates response", fallback)

        rates: Dict[Currency, float] = {}
        for currency in SUPPORTED_CURRENCIES:
            if currency == ANCHOR_CURRENCY:
                rates[currency] = 1.0
                continue
            quote = quotes.get(currency.value)
            if quote is None:
                logger.warning("Rate for %s missing in response", currency.value)
                continue
            rates[currency] = to_usd_per_unit(quote)

        try:
            self._save_cache(rates)
        except OSError as e:
            logger.warning("Failed to save rates cache: %s", e)
        logger.info("Exchange rates fetched currencies=%s", len(rates))
        return RatesUpdate(rates=rates)

    def _fallback(self, message: str, settings: Optional[Settings]) -> RatesUpdate:
        cached = self.load_cached()
        if cached:
            return RatesUpdate(rates=cached, error=message)
        if settings is not None:
            anchored = settings.rebased(ANCHOR_CURRENCY)
            return RatesUpdate(rates=dict(anchored.rates), error=message)
        return RatesUpdate(
            rates={currency: 1.0 for currency in SUPPORTED_CURRENCIES}, error=message
        )

    def load_cached(self) -> Optional[Dict[Currency, float]]:
        if not self._cache_path.exists():
            return None
        try:
            with open(self._cache_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError):
            logger.exception("Failed to load cached currency rates from %s", self._cache_path)
            return None
        if not isinstance(data, dict):
            return None
        cached: Dict[Currency, float] = {}
        for code, value in data.items():
            if code in Currency.__members__:
                try:
                    cached[Currency(code)] = float(value)
                except (TypeError, ValueError):
                    continue
        return cached or None

    def _save_cache(self, rates: Dict[Currency, float]) -> None:
        self._cache_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._cache_path, "w", encoding="utf-8") as f:
            json.dump(
                {currency.value: rate for currency, rate in rates.items()},
                f,
                ensure_ascii=False,
                indent=2,
            )
