import argparse
import json
from contextlib import contextmanager

from . import __version__
from .database import create_db_engine, init_database
from .errors import JobLedgerError
from .models import EventLedger, JobStateStore, SyncBookmark
from .schema import DEFAULT_BODY_TYPE
from .transactions import TransactionManager

STORES = {
    "events": EventLedger,
    "job_states": JobStateStore,
}


@contextmanager
def _manager(args: argparse.Namespace):
    """TransactionManager for one command; the engine is disposed afterwards."""
    engine = create_db_engine(args.db)
    try:
        yield TransactionManager(engine)
    finally:
        engine.dispose()


def cmd_init_db(args: argparse.Namespace) -> None:
    with _manager(args) as manager:
        init_database(manager.engine)
        print(f"Tables ready: {manager.engine.url.render_as_string(hide_password=True)}")


def cmd_add_event(args: argparse.Namespace) -> None:
    with _manager(args) as manager:
        ledger = EventLedger(manager)
        event = ledger.save(ledger.from_api_input({
            "job_id": args.job,
            "name": args.name,
            "hash": args.hash,
            "body_type": args.body_type,
            "body": args.body,
        }))
    print(event["id"])


def cmd_events_since(args: argparse.Namespace) -> None:
    excluded = [i.strip() for i in args.exclude.split(",") if i.strip()] if args.exclude else []
    with _manager(args) as manager:
        ledger = EventLedger(manager)
        events = ledger.events_since(args.job, args.since, excluded)
    for event in events:
        print(json.dumps(ledger.to_api_output(event), ensure_ascii=False))

    bookmark = SyncBookmark(args.since, frozenset(excluded)).advance(events)
    since_time, seen_ids = bookmark.query_args()
    print(json.dumps({"bookmark": {"since": since_time, "exclude": seen_ids}}))


def cmd_delete(args: argparse.Namespace) -> None:
    with _manager(args) as manager:
        STORES[args.table](manager).delete(args.ids)
    print(f"Deleted {len(args.ids)} row(s) from {args.table}")


def main(argv=None):
    parser = argparse.ArgumentParser(prog="jobledger", description="Job event ledger")
    parser.add_argument("--version", action="store_true", help="Show version")
    parser.add_argument("--db", help="Database URL (default: JOBLEDGER_DATABASE_URL)")

    subparsers = parser.add_subparsers(dest="command")
    ini = subparsers.add_parser("init-db", help="Create missing tables")
    ini.set_defaults(func=cmd_init_db)

    add = subparsers.add_parser("add-event", help="Append an event to a job")
    add.add_argument("--job", required=True, help="Job id")
    add.add_argument("--name", required=True, help="Event name")
    add.add_argument("--hash", default="", help="Correlation token")
    add.add_argument("--body", default="", help="Event payload")
    add.add_argument("--body-type", type=int, default=DEFAULT_BODY_TYPE, help="Payload encoding tag (default: 1)")
    add.set_defaults(func=cmd_add_event)

    since = subparsers.add_parser("events-since", help="Print events of a job since a bookmark")
    since.add_argument("--job", required=True, help="Job id")
    since.add_argument("--since", type=int, default=0, help="Epoch milliseconds (default: 0)")
    since.add_argument("--exclude", help="Comma-separated event ids already seen at --since")
    since.set_defaults(func=cmd_events_since)

    rm = subparsers.add_parser("delete", help="Delete records by id")
    rm.add_argument("--table", choices=sorted(STORES), default="events", help="Table (default: events)")
    rm.add_argument("ids", nargs="+", help="Record ids")
    rm.set_defaults(func=cmd_delete)

    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        try:
            args.func(args)
        except JobLedgerError as e:
            raise SystemExit(f"{type(e).__name__}: {e}")
        return

    parser.print_help()


if __name__ == "__main__":
    main()
