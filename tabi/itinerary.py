"""Read-mostly itinerary queries used by the command line and tool clients."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from tabi import models
from tabi.formatting import format_item_line, format_time24, get_day_number
from tabi.remote_store import RecordNotFoundError, RemoteStore

logger = logging.getLogger(__name__)

Record = Dict[str, Any]


class ItineraryError(RuntimeError):
    """Raised when a trip or day cannot be resolved."""


class ItineraryService:
    """Compose trip, day and item lookups on top of :class:`RemoteStore`."""

    def __init__(self, remote: RemoteStore, *, default_trip_id: str = "") -> None:
        self._remote = remote
        self._default_trip_id = default_trip_id

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def resolve_trip_id(self, trip_id: Optional[str] = None) -> str:
        if trip_id:
            return trip_id
        if self._default_trip_id:
            return self._default_trip_id
        trips = self._remote.select(models.TRIPS_TABLE, columns="id", order=("start_date.asc",), limit=1)
        if not trips:
            raise ItineraryError("No trip found. Provide a trip id or set TABI_DEFAULT_TRIP_ID.")
        return str(trips[0]["id"])

    def get_trip(self, trip_id: str) -> Record:
        try:
            return self._remote.get(models.TRIPS_TABLE, trip_id)
        except RecordNotFoundError as exc:
            raise ItineraryError(f"Trip {trip_id} not found") from exc

    def list_days(self, trip_id: str) -> List[Record]:
        return self._remote.select(models.DAYS_TABLE, filters={"trip_id": trip_id}, order=("date.asc",))

    def list_items(self, day_id: str) -> List[Record]:
        return self._remote.select(models.ITEMS_TABLE, filters={"day_id": day_id}, order=("sort_order.asc",))

    def get_day_by_number(self, trip_id: str, day_number: int) -> Record:
        if day_number < 1:
            raise ItineraryError("Day numbers start at 1")
        trip = self.get_trip(trip_id)
        for day in self.list_days(trip_id):
            if get_day_number(trip["start_date"], day["date"]) == day_number:
                return day
        raise ItineraryError(f"Day {day_number} not found in trip {trip_id}")

    def get_day_by_date(self, trip_id: str, date: str) -> Record:
        days = self._remote.select(
            models.DAYS_TABLE, filters={"trip_id": trip_id, "date": date}, limit=1
        )
        if not days:
            raise ItineraryError(f"No day on {date} in trip {trip_id}")
        return days[0]

    def resolve_day(
        self, trip_id: str, *, day_number: Optional[int] = None, date: Optional[str] = None
    ) -> Record:
        if day_number:
            return self.get_day_by_number(trip_id, day_number)
        if date:
            return self.get_day_by_date(trip_id, date)
        raise ItineraryError("Provide either a day number or a date")

    def next_sort_order(self, day_id: str) -> int:
        rows = self._remote.select(
            models.ITEMS_TABLE,
            filters={"day_id": day_id},
            columns="sort_order",
            order=("sort_order.desc",),
            limit=1,
        )
        if not rows or rows[0].get("sort_order") is None:
            return 0
        return int(rows[0]["sort_order"]) + 1

    # ------------------------------------------------------------------
    # Text views
    # ------------------------------------------------------------------
    def get_trip_overview(self, trip_id: Optional[str] = None) -> str:
        trip_id = self.resolve_trip_id(trip_id)
        trip = self.get_trip(trip_id)

        title = " ".join(str(part) for part in (trip.get("cover_emoji"), trip.get("name")) if part)
        lines = [
            f"# {title}",
            f"Destination: {trip.get('destination') or 'Not set'}",
            f"Dates: {trip.get('start_date')} → {trip.get('end_date')}",
            f"Timezone: {trip.get('timezone') or models.DEFAULT_TIMEZONE}",
            f"Currency: {trip.get('currency') or models.DEFAULT_CURRENCY}",
            "",
        ]
        for day in self.list_days(trip_id):
            number = get_day_number(trip["start_date"], day["date"])
            heading = f"## Day {number} — {day['date']}"
            if day.get("title"):
                heading += f" ({day['title']})"
            lines.append(heading)
            items = self.list_items(day["id"])
            if not items:
                lines.append("  (empty)")
            for item in items:
                lines.append(f"  • {format_item_line(item)}")
                lines.append(f"    [id: {item['id']}]")
            lines.append("")
        return "\n".join(lines)

    def get_day_details(
        self,
        trip_id: Optional[str] = None,
        *,
        day_number: Optional[int] = None,
        date: Optional[str] = None,
    ) -> str:
        trip_id = self.resolve_trip_id(trip_id)
        day = self.resolve_day(trip_id, day_number=day_number, date=date)
        lines = [f"# {day['date']} — {day.get('title') or 'Untitled'}"]
        if day.get("notes"):
            lines.append(f"Notes: {day['notes']}")
        lines.append("")

        items = self.list_items(day["id"])
        if not items:
            lines.append("(no items)")
        for item in items:
            lines.append(f"### {item.get('title')}")
            lines.append(f"  ID: {item['id']}")
            lines.append(f"  Category: {item.get('category')}")
            lines.append(f"  Status: {item.get('status')}")
            if item.get("start_time"):
                span = format_time24(item["start_time"])
                if item.get("end_time"):
                    span += f" – {format_time24(item['end_time'])}"
                lines.append(f"  Time: {span}")
            for label, key in (
                ("Location", "location_name"),
                ("Address", "location_address"),
                ("Notes", "notes"),
                ("Booking", "booking_ref"),
                ("URL", "url"),
            ):
                if item.get(key):
                    lines.append(f"  {label}: {item[key]}")
            if item.get("cost_estimate"):
                lines.append(f"  Cost: {item.get('currency') or models.DEFAULT_CURRENCY} {item['cost_estimate']}")
            lines.append("")
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Search and moves
    # ------------------------------------------------------------------
    def search_items(
        self,
        trip_id: Optional[str] = None,
        *,
        query: Optional[str] = None,
        category: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[Record]:
        """Return items of a trip whose text fields contain ``query``.

        Matching is a case-insensitive substring test over title, notes,
        location name and booking reference. ``category`` and ``status``
        narrow the server-side selection first. Each result carries the
        ``day`` record it belongs to.
        """

        trip_id = self.resolve_trip_id(trip_id)
        days = self.list_days(trip_id)
        if not days:
            return []
        filters: Dict[str, Any] = {"day_id": [day["id"] for day in days]}
        if category:
            filters["category"] = models.validate_category(category)
        if status:
            filters["status"] = models.validate_status(status)
        items = self._remote.select(models.ITEMS_TABLE, filters=filters, order=("sort_order.asc",))

        if query:
            needle = query.lower()
            items = [item for item in items if _matches(item, needle, models.SEARCHABLE_ITEM_FIELDS)]

        day_index = {day["id"]: day for day in days}
        return [{**item, "day": day_index.get(item.get("day_id"))} for item in items]

    def move_item_to_day(
        self,
        item_id: str,
        trip_id: Optional[str] = None,
        *,
        target_day_number: Optional[int] = None,
        target_date: Optional[str] = None,
    ) -> Record:
        """Append an item to the end of another day and return the target day."""

        trip_id = self.resolve_trip_id(trip_id)
        target = self.resolve_day(trip_id, day_number=target_day_number, date=target_date)
        sort_order = self.next_sort_order(target["id"])
        self._remote.update(models.ITEMS_TABLE, item_id, {"day_id": target["id"], "sort_order": sort_order})
        logger.info("Moved item %s to day %s at position %d", item_id, target["id"], sort_order)
        return target

    def reorder_items(self, item_ids: Sequence[str]) -> int:
        if not item_ids:
            raise ItineraryError("Provide at least one item id to reorder")
        for index, item_id in enumerate(item_ids):
            self._remote.update(models.ITEMS_TABLE, item_id, {"sort_order": index})
        return len(item_ids)


def _matches(item: Record, needle: str, fields: Sequence[str]) -> bool:
    for field in fields:
        value = item.get(field)
        if isinstance(value, str) and needle in value.lower():
            return True
    return False


__all__ = ["ItineraryError", "ItineraryService"]
