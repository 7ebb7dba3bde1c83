from __future__ import annotations

import pytest

from tabi.itinerary import ItineraryError, ItineraryService


@pytest.fixture
def trip_remote(remote):
    remote.seed(
        "trips",
        {
            "id": "t1",
            "name": "Japan",
            "cover_emoji": "🗾",
            "destination": "Tokyo",
            "start_date": "2025-04-01",
            "end_date": "2025-04-03",
        },
    )
    remote.seed(
        "trip_days",
        {"id": "d1", "trip_id": "t1", "date": "2025-04-01", "title": "Arrival"},
        {"id": "d2", "trip_id": "t1", "date": "2025-04-02"},
    )
    remote.seed(
        "itinerary_items",
        {"id": "i1", "day_id": "d1", "title": "Narita Express", "category": "transport", "status": "done", "sort_order": 0},
        {"id": "i2", "day_id": "d1", "title": "Ramen dinner", "category": "food", "status": "planned",
         "sort_order": 1, "notes": "Try the TONKOTSU"},
    )
    return remote


def test_overview_lists_days_and_items(trip_remote) -> None:
    service = ItineraryService(trip_remote)

    text = service.get_trip_overview("t1")

    lines = text.splitlines()
    assert lines[0] == "# 🗾 Japan"
    assert "## Day 1 — 2025-04-01 (Arrival)" in lines
    assert "## Day 2 — 2025-04-02" in lines
    assert "    [id: i2]" in lines
    assert "  (empty)" in lines


def test_default_trip_falls_back_to_first_trip(trip_remote) -> None:
    assert ItineraryService(trip_remote).resolve_trip_id() == "t1"
    assert ItineraryService(trip_remote, default_trip_id="t9").resolve_trip_id() == "t9"


def test_no_trip_raises(remote) -> None:
    with pytest.raises(ItineraryError):
        ItineraryService(remote).resolve_trip_id()


def test_day_lookup_by_number_and_date(trip_remote) -> None:
    service = ItineraryService(trip_remote)

    assert service.get_day_by_number("t1", 2)["id"] == "d2"
    assert service.get_day_by_date("t1", "2025-04-01")["id"] == "d1"
    with pytest.raises(ItineraryError):
        service.get_day_by_number("t1", 3)
    with pytest.raises(ItineraryError):
        service.resolve_day("t1")


def test_day_details(trip_remote) -> None:
    text = ItineraryService(trip_remote).get_day_details("t1", day_number=1)

    assert text.startswith("# 2025-04-01 — Arrival")
    assert "### Ramen dinner" in text
    assert "  Notes: Try the TONKOTSU" in text


def test_search_is_case_insensitive_and_attaches_day(trip_remote) -> None:
    service = ItineraryService(trip_remote)

    results = service.search_items("t1", query="tonkotsu")

    assert [item["id"] for item in results] == ["i2"]
    assert results[0]["day"]["id"] == "d1"
    assert [item["id"] for item in service.search_items("t1", status="done")] == ["i1"]
    with pytest.raises(ValueError):
        service.search_items("t1", category="museum")


def test_move_item_appends_to_target_day(trip_remote) -> None:
    service = ItineraryService(trip_remote)

    target = service.move_item_to_day("i1", "t1", target_day_number=2)

    assert target["id"] == "d2"
    moved = trip_remote.tables["itinerary_items"]["i1"]
    assert moved["day_id"] == "d2"
    assert moved["sort_order"] == 0


def test_reorder_items_writes_positions(trip_remote) -> None:
    service = ItineraryService(trip_remote)

    assert service.reorder_items(["i2", "i1"]) == 2
    assert trip_remote.tables["itinerary_items"]["i2"]["sort_order"] == 0
    assert trip_remote.tables["itinerary_items"]["i1"]["sort_order"] == 1
    with pytest.raises(ItineraryError):
        service.reorder_items([])
