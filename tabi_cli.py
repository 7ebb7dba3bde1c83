"""Command line helper for inspecting and syncing the Tabi offline queue."""

from __future__ import annotations

import argparse
import sys
from datetime import datetime, timezone
from typing import List, Optional

import httpx

from app import TabiSession
from db import LocalDatabase, LocalStoreError
from settings import DEFAULT_SETTINGS_PATH, SettingsError, TabiSettings, load_settings, save_settings
from tabi.itinerary import ItineraryError
from tabi.logging_config import configure_logging
from tabi.remote_store import RemoteStoreError, format_error_message


def _open_session(args: argparse.Namespace) -> TabiSession:
    settings: TabiSettings = args.settings
    database = LocalDatabase(args.db) if args.db else None
    return TabiSession(settings, database=database, transport=args.transport)


def command_status(args: argparse.Namespace) -> int:
    session = _open_session(args)
    try:
        online = session.monitor.check_now()
        pending = session.queue.count()
    finally:
        session.stop()
    print(f"Server        : {args.settings.supabase_url}")
    print(f"Connectivity  : {'online' if online else 'offline'}")
    print(f"Pending edits : {pending}")
    return 0


def _format_queued_at(timestamp_ms: int) -> str:
    queued_at = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    return f"{queued_at:%Y-%m-%d %H:%M:%S}Z"


def command_queue_list(args: argparse.Namespace) -> int:
    session = _open_session(args)
    try:
        entries = session.queue.list_all()
        unreadable = session.queue.list_unreadable()
    finally:
        session.stop()
    if not entries and not unreadable:
        print("No pending changes.")
        return 0
    for entry in entries:
        print(f"{entry.id}  {_format_queued_at(entry.timestamp)}  {entry.type.value:<7} {entry.table}")
    for broken in unreadable:
        print(f"{broken.id}  {_format_queued_at(broken.timestamp)}  <unreadable> {broken.type} {broken.table}")
    if unreadable:
        print(
            f"{len(unreadable)} change(s) cannot be replayed; drop them with 'queue drop <id>'.",
            file=sys.stderr,
        )
    return 0


def command_queue_clear(args: argparse.Namespace) -> int:
    if not args.yes:
        print("Refusing to discard pending changes without --yes.", file=sys.stderr)
        return 1
    session = _open_session(args)
    try:
        removed = session.queue.clear()
    finally:
        session.stop()
    print(f"Discarded {removed} pending change(s).")
    return 0


def command_queue_drop(args: argparse.Namespace) -> int:
    session = _open_session(args)
    try:
        session.queue.remove(args.id)
    finally:
        session.stop()
    print(f"Dropped queued change {args.id}.")
    return 0


def command_sync(args: argparse.Namespace) -> int:
    session = _open_session(args)
    try:
        if not session.monitor.check_now():
            print("Server unreachable; pending changes kept.", file=sys.stderr)
            return 1
        summary = session.coordinator.drain()
    finally:
        session.stop()
    print(summary.message)
    return 0 if not summary.failed else 2


def command_overview(args: argparse.Namespace) -> int:
    session = _open_session(args)
    try:
        print(session.itinerary.get_trip_overview(args.trip))
    finally:
        session.stop()
    return 0


def command_day(args: argparse.Namespace) -> int:
    session = _open_session(args)
    try:
        print(session.itinerary.get_day_details(args.trip, day_number=args.number, date=args.date))
    finally:
        session.stop()
    return 0


def command_search(args: argparse.Namespace) -> int:
    session = _open_session(args)
    try:
        results = session.itinerary.search_items(
            args.trip, query=args.query, category=args.category, status=args.status
        )
    finally:
        session.stop()
    if not results:
        print("No items found matching your search.")
        return 0
    print(f"Found {len(results)} item(s):")
    for item in results:
        day = item.get("day") or {}
        print(f"• {item.get('title')} [{item.get('category')}]")
        print(f"  Day: {day.get('date', 'Unknown')} ({day.get('title') or ''})")
        print(f"  ID: {item.get('id')}")
    return 0


def command_move(args: argparse.Namespace) -> int:
    session = _open_session(args)
    try:
        target = session.itinerary.move_item_to_day(
            args.item, args.trip, target_day_number=args.to_day, target_date=args.to_date
        )
    finally:
        session.stop()
    print(f"Moved item {args.item} to {target['date']}.")
    return 0


def command_reorder(args: argparse.Namespace) -> int:
    session = _open_session(args)
    try:
        count = session.itinerary.reorder_items(args.items)
    finally:
        session.stop()
    print(f"Reordered {count} item(s).")
    return 0


def command_logout(args: argparse.Namespace) -> int:
    session = _open_session(args)
    try:
        removed = session.logout()
        pending = session.queue.count()
    finally:
        session.stop()
    args.settings.access_token = ""
    save_settings(args.settings, args.settings_path)
    print(f"Signed out; cleared {removed} cached snapshot(s).")
    if pending:
        print(f"{pending} pending change(s) kept for the next sign-in.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Tabi itinerary sync tool")
    parser.add_argument("--db", help="Path to the local database file")
    parser.add_argument(
        "--settings",
        dest="settings_path",
        default=DEFAULT_SETTINGS_PATH,
        help="Path to the settings file",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    status_parser = subparsers.add_parser("status", help="Show connectivity and pending changes")
    status_parser.set_defaults(func=command_status)

    queue_parser = subparsers.add_parser("queue", help="Inspect or clear the offline queue")
    queue_subparsers = queue_parser.add_subparsers(dest="queue_command", required=True)
    list_parser = queue_subparsers.add_parser("list", help="List pending changes in replay order")
    list_parser.set_defaults(func=command_queue_list)
    clear_parser = queue_subparsers.add_parser("clear", help="Discard every pending change")
    clear_parser.add_argument("--yes", action="store_true", help="Confirm discarding pending changes")
    clear_parser.set_defaults(func=command_queue_clear)
    drop_parser = queue_subparsers.add_parser("drop", help="Discard one pending change by id")
    drop_parser.add_argument("id", help="Queue entry id as shown by 'queue list'")
    drop_parser.set_defaults(func=command_queue_drop)

    sync_parser = subparsers.add_parser("sync", help="Replay pending changes now")
    sync_parser.set_defaults(func=command_sync)

    overview_parser = subparsers.add_parser("overview", help="Print a trip with all days and items")
    overview_parser.add_argument("--trip", help="Trip id (defaults to TABI_DEFAULT_TRIP_ID)")
    overview_parser.set_defaults(func=command_overview)

    day_parser = subparsers.add_parser("day", help="Print the items of one day")
    day_parser.add_argument("--trip", help="Trip id (defaults to TABI_DEFAULT_TRIP_ID)")
    group = day_parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--number", type=int, help="Day number, 1 being the first day")
    group.add_argument("--date", help="Date in YYYY-MM-DD format")
    day_parser.set_defaults(func=command_day)

    search_parser = subparsers.add_parser("search", help="Search items by text, category or status")
    search_parser.add_argument("query", nargs="?", help="Text to look for in title, notes, location")
    search_parser.add_argument("--trip", help="Trip id (defaults to TABI_DEFAULT_TRIP_ID)")
    search_parser.add_argument("--category", help="Only items in this category")
    search_parser.add_argument("--status", help="Only items with this status")
    search_parser.set_defaults(func=command_search)

    move_parser = subparsers.add_parser("move", help="Move an item to the end of another day")
    move_parser.add_argument("item", help="Item id")
    move_parser.add_argument("--trip", help="Trip id (defaults to TABI_DEFAULT_TRIP_ID)")
    target = move_parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--to-day", type=int, help="Target day number")
    target.add_argument("--to-date", help="Target date in YYYY-MM-DD format")
    move_parser.set_defaults(func=command_move)

    reorder_parser = subparsers.add_parser("reorder", help="Set the order of items within a day")
    reorder_parser.add_argument("items", nargs="+", help="Item ids in their new order")
    reorder_parser.set_defaults(func=command_reorder)

    logout_parser = subparsers.add_parser("logout", help="Clear cached data and the saved access token")
    logout_parser.set_defaults(func=command_logout)

    return parser


def main(
    argv: Optional[List[str]] = None,
    settings: Optional[TabiSettings] = None,
    transport: Optional[httpx.BaseTransport] = None,
) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    args.transport = transport
    configure_logging()
    try:
        args.settings = settings or load_settings(args.settings_path)
        args.settings.require_configured()
        return args.func(args)
    except (SettingsError, ItineraryError, LocalStoreError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except RemoteStoreError as exc:
        print(f"Error: {format_error_message(exc)}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
