import calendar
import math
import re
from datetime import date, datetime, timezone


def parse_ymd(value: str | date) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        raise ValueError("Date value is empty")
    if not re.fullmatch(r"\d{4}-\d{2}-\d{2}", value):
        raise ValueError("Invalid date format")
    year, month, day = map(int, value.split("-"))
    if not (1 <= month <= 12):
        raise ValueError("Invalid month")
    last_day = calendar.monthrange(year, month)[1]
    if not (1 <= day <= last_day):
        raise ValueError("Invalid day")
    return date(year, month, day)


def parse_timestamp(value: str | date | datetime | None) -> datetime:
    """Parse a stored or user supplied moment into an aware UTC datetime.

    Accepts ``datetime`` objects, plain dates (midnight UTC), ISO 8601 strings
    with or without offset (a trailing ``Z`` is understood) and ``None``,
    which means "now".
    """
    if value is None or value == "":
        return datetime.now(timezone.utc)
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if re.fullmatch(r"\d{4}-\d{2}-\d{2}", text):
            day = parse_ymd(text)
            parsed = datetime(day.year, day.month, day.day)
        else:
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            try:
                parsed = datetime.fromisoformat(text)
            except ValueError as exc:
                raise ValueError(f"Invalid timestamp: {value}") from exc
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def safe_amount(value) -> float:
    """Coerce to float, mapping non-numeric and non-finite input to 0."""
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(amount):
        return 0.0
    return amount


def require_positive_amount(value, label: str = "Amount") -> float:
    try:
        amount = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{label} must be a number") from exc
    if not math.isfinite(amount) or amount <= 0:
        raise ValueError(f"{label} must be positive")
    return amount


def clean_text(value) -> str:
    return value.strip() if isinstance(value, str) else ""


def normalize_key(value) -> str:
    """Identity key for free-text names: trimmed and case-folded."""
    return clean_text(value).lower()
