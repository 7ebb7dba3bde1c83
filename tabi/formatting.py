"""Display helpers for dates, times, money and itinerary lines."""
from __future__ import annotations

from datetime import date, datetime
from typing import Any, List, Mapping, Optional, Sequence, TypeVar, Union

from tabi.models import CATEGORIES, DEFAULT_CURRENCY

T = TypeVar("T")

# ISO 4217 currencies displayed without minor units.
ZERO_DECIMAL_CURRENCIES = {"JPY", "KRW", "VND", "CLP", "ISK"}
CURRENCY_SYMBOLS = {"JPY": "¥", "USD": "$", "EUR": "€", "GBP": "£", "KRW": "₩"}


def _parse_date(value: Union[str, date]) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def format_time(value: Optional[str]) -> str:
    """Return ``"HH:MM[:SS]"`` as a 12-hour clock string, e.g. ``"7:05 PM"``."""

    if not value:
        return ""
    hours, _, rest = value.partition(":")
    minutes = rest[:2]
    hour = int(hours)
    suffix = "PM" if hour >= 12 else "AM"
    display_hour = hour % 12 or 12
    return f"{display_hour}:{minutes} {suffix}"


def format_time24(value: Optional[str]) -> str:
    if not value:
        return ""
    return value[:5]


def format_date(value: Union[str, date]) -> str:
    parsed = _parse_date(value)
    return f"{parsed:%a}, {parsed:%b} {parsed.day}"


def format_date_long(value: Union[str, date]) -> str:
    parsed = _parse_date(value)
    return f"{parsed:%A}, {parsed:%B} {parsed.day}"


def format_currency(amount: Optional[float], currency: str = DEFAULT_CURRENCY) -> str:
    if amount is None:
        return ""
    code = (currency or DEFAULT_CURRENCY).upper()
    symbol = CURRENCY_SYMBOLS.get(code, f"{code} ")
    if code in ZERO_DECIMAL_CURRENCIES:
        return f"{symbol}{round(amount):,}"
    return f"{symbol}{amount:,.2f}"


def get_day_number(trip_start: Union[str, date], day_date: Union[str, date]) -> int:
    """Return the 1-based position of ``day_date`` within a trip."""

    return (_parse_date(day_date) - _parse_date(trip_start)).days + 1


def reorder_list(values: Sequence[T], from_index: int, to_index: int) -> List[T]:
    """Return a copy of ``values`` with one element moved."""

    result = list(values)
    moved = result.pop(from_index)
    result.insert(to_index, moved)
    return result


def category_emoji(category: str) -> str:
    config = CATEGORIES.get(category)
    return config.emoji if config else "•"


def format_item_line(item: Mapping[str, Any]) -> str:
    """One-line summary of an itinerary item for text overviews."""

    parts: List[str] = [category_emoji(str(item.get("category") or ""))]
    start = format_time24(item.get("start_time"))
    end = format_time24(item.get("end_time"))
    if start and end:
        parts.append(f"{start}–{end}")
    elif start:
        parts.append(start)
    parts.append(str(item.get("title") or ""))
    if item.get("location_name"):
        parts.append(f"@ {item['location_name']}")
    if item.get("cost_estimate") is not None:
        parts.append(f"({format_currency(float(item['cost_estimate']), item.get('currency') or DEFAULT_CURRENCY)})")
    status = item.get("status")
    if status and status != "planned":
        parts.append(f"[{status}]")
    return " ".join(parts)
