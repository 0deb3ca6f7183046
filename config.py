import os
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


USE_SQLITE = _env_flag("LEDGER_USE_SQLITE", True)
SQLITE_PATH = os.environ.get("LEDGER_SQLITE_PATH", str(PROJECT_ROOT / "ledger.db"))
JSON_PATH = os.environ.get("LEDGER_JSON_PATH", str(PROJECT_ROOT / "ledger.json"))
SCHEMA_PATH = str(PROJECT_ROOT / "db" / "schema.sql")

DEFAULT_BASE_CURRENCY = os.environ.get("LEDGER_BASE_CURRENCY", "USD")

RATES_API_URL = os.environ.get(
    "LEDGER_RATES_URL",
    "https://api.exchangerate.host/latest?base=USD&symbols=RUB,EUR,GEL",
)
RATES_TIMEOUT = float(os.environ.get("LEDGER_RATES_TIMEOUT", "10"))
RATES_CACHE_PATH = os.environ.get(
    "LEDGER_RATES_CACHE", str(PROJECT_ROOT / "currency_rates.json")
)

LOG_LEVEL = os.environ.get("LEDGER_LOG_LEVEL", "INFO")
