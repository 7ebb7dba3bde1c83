"""Table names, enumerations and defaults shared across Tabi."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple

TRIPS_TABLE = "trips"
DAYS_TABLE = "trip_days"
ITEMS_TABLE = "itinerary_items"

DEFAULT_CURRENCY = "JPY"
DEFAULT_TIMEZONE = "Asia/Tokyo"
DEFAULT_ITEM_TITLE = "New Item"
DEFAULT_CATEGORY = "activity"
DEFAULT_STATUS = "planned"

# Placeholder ids handed out to records created while offline.
LOCAL_ID_PREFIX = "local-"


@dataclass(frozen=True)
class CategoryConfig:
    label: str
    emoji: str


CATEGORIES: Dict[str, CategoryConfig] = {
    "transport": CategoryConfig(label="Transport", emoji="🚄"),
    "food": CategoryConfig(label="Food & Drink", emoji="🍜"),
    "activity": CategoryConfig(label="Activity", emoji="⛩️"),
    "stay": CategoryConfig(label="Accommodation", emoji="🏨"),
    "free_time": CategoryConfig(label="Free Time", emoji="☕"),
}

STATUSES: Dict[str, str] = {
    "planned": "Planned",
    "confirmed": "Confirmed",
    "done": "Done",
    "skipped": "Skipped",
}

TRIP_UPDATABLE_FIELDS: Tuple[str, ...] = (
    "name",
    "destination",
    "start_date",
    "end_date",
    "timezone",
    "cover_emoji",
    "currency",
)

DAY_UPDATABLE_FIELDS: Tuple[str, ...] = ("title", "notes", "date", "sort_order")

ITEM_UPDATABLE_FIELDS: Tuple[str, ...] = (
    "title",
    "description",
    "category",
    "status",
    "start_time",
    "end_time",
    "location_name",
    "location_address",
    "latitude",
    "longitude",
    "notes",
    "cost_estimate",
    "currency",
    "booking_ref",
    "url",
    "sort_order",
    "day_id",
)

SEARCHABLE_ITEM_FIELDS: Tuple[str, ...] = ("title", "notes", "location_name", "booking_ref")


def is_local_id(record_id: object) -> bool:
    return isinstance(record_id, str) and record_id.startswith(LOCAL_ID_PREFIX)


def validate_category(category: str) -> str:
    if category not in CATEGORIES:
        raise ValueError(f"Unknown category {category!r}; expected one of {', '.join(CATEGORIES)}")
    return category


def validate_status(status: str) -> str:
    if status not in STATUSES:
        raise ValueError(f"Unknown status {status!r}; expected one of {', '.join(STATUSES)}")
    return status


__all__ = [
    "CATEGORIES",
    "CategoryConfig",
    "DAYS_TABLE",
    "DAY_UPDATABLE_FIELDS",
    "DEFAULT_CATEGORY",
    "DEFAULT_CURRENCY",
    "DEFAULT_ITEM_TITLE",
    "DEFAULT_STATUS",
    "DEFAULT_TIMEZONE",
    "ITEMS_TABLE",
    "ITEM_UPDATABLE_FIELDS",
    "LOCAL_ID_PREFIX",
    "SEARCHABLE_ITEM_FIELDS",
    "STATUSES",
    "TRIPS_TABLE",
    "TRIP_UPDATABLE_FIELDS",
    "is_local_id",
    "validate_category",
    "validate_status",
]
