"""memento CLI — run the daemon and query the activity log."""

import argparse
import os
import signal
import sys
from datetime import datetime

from memento.config import DATA_DIR, DB_PATH, LOG_PATH, PID_PATH
from memento.blacklist import Blacklist
from memento.db import Database, StorageError
from memento.search import search


def _pid() -> int | None:
    if PID_PATH.exists():
        try:
            return int(PID_PATH.read_text().strip())
        except ValueError:
            pass
    return None


def _is_running(pid: int | None) -> bool:
    if pid is None:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def _notify_daemon() -> None:
    """Ask a running daemon to reload its blacklist."""
    pid = _pid()
    if not _is_running(pid):
        return
    try:
        os.kill(pid, signal.SIGHUP)
        print(f"  daemon (pid {pid}) notified")
    except (ProcessLookupError, PermissionError):
        pass


def _fmt_ts(ts: datetime) -> str:
    return ts.astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_events(events) -> None:
    if not events:
        print("No matching events.")
        return
    for ev in events:
        tags = f"  [{', '.join(ev.tags)}]" if ev.tags else ""
        print(f"  {ev.id:>7}  {_fmt_ts(ev.timestamp)}  {ev.app} — {ev.title}{tags}")


# ── Subcommands ──────────────────────────────────────────────────────────


def cmd_run(args: argparse.Namespace) -> None:
    from memento.daemon import main as daemon_main
    daemon_main()


def cmd_status(args: argparse.Namespace) -> None:
    pid = _pid()
    running = _is_running(pid)

    print(f"\n  memento status")
    print(f"  ──────────────────\n")
    print(f"  Daemon       {'running' if running else 'stopped'}" +
          (f" (pid {pid})" if running and pid else ""))
    print(f"  Data dir     {DATA_DIR}")

    if DB_PATH.exists():
        size_mb = DB_PATH.stat().st_size / (1024 * 1024)
        print(f"  Database     {size_mb:.1f} MB")
        with Database(DB_PATH) as db:
            events, indexed = db.check_index()
        print(f"  Events       {events:,}" +
              ("" if events == indexed else f" (index holds {indexed:,}!)"))
    else:
        print("  Database     not created yet")

    print()


def cmd_logs(args: argparse.Namespace) -> None:
    if not LOG_PATH.exists():
        print(f"No log files found at {DATA_DIR}")
        return

    lines = LOG_PATH.read_text().splitlines()
    for line in lines[-args.lines:]:
        print(line)


def cmd_search(args: argparse.Namespace) -> None:
    query = " ".join(args.query)
    with Database(DB_PATH) as db:
        events = search(query, db, limit=args.limit)
        db.save_recent_search(query)
    _print_events(events)


def cmd_tag(args: argparse.Namespace) -> int:
    with Database(DB_PATH) as db:
        try:
            found = db.append_tag(args.event_id, args.tag)
        except ValueError as e:
            print(f"memento: {e}", file=sys.stderr)
            return 2
    if not found:
        print(f"event {args.event_id} not found", file=sys.stderr)
        return 1
    print(f"tagged event {args.event_id} with {args.tag!r}")
    return 0


def cmd_blacklist(args: argparse.Namespace) -> int:
    with Database(DB_PATH) as db:
        blacklist = Blacklist(db)
        current = blacklist.load()

        if args.action == "show":
            if not current:
                print("blacklist is empty")
            for keyword in sorted(current, key=str.lower):
                print(f"  {keyword}")
            return 0

        if args.action in ("add", "remove") and not args.keywords:
            print(f"blacklist {args.action}: no keywords given", file=sys.stderr)
            return 2

        if args.action == "set":
            updated = blacklist.replace(args.keywords)
        elif args.action == "add":
            updated = blacklist.replace([*current, *args.keywords])
        else:
            drop = {k.strip().lower() for k in args.keywords}
            updated = blacklist.replace(k for k in current if k.lower() not in drop)

    print(f"blacklist now has {len(updated)} keyword(s)")
    _notify_daemon()
    return 0


def cmd_recent(args: argparse.Namespace) -> None:
    with Database(DB_PATH) as db:
        recent = db.get_recent_searches()
    if not recent:
        print("no recent searches")
    for i, query in enumerate(recent, 1):
        print(f"  {i:>2}. {query}")


def cmd_stats(args: argparse.Namespace) -> None:
    with Database(DB_PATH) as db:
        stats = db.app_stats(limit=args.limit)
    if not stats:
        print("No events recorded yet.")
        return
    width = max(len(s.app) for s in stats)
    for s in stats:
        print(f"  {s.app:<{width}}  {s.count:>7,}  "
              f"{_fmt_ts(s.first_seen)} → {_fmt_ts(s.last_seen)}")


def cmd_timeline(args: argparse.Namespace) -> int:
    if args.date:
        try:
            day = datetime.strptime(args.date, "%Y-%m-%d").date()
        except ValueError:
            print(f"invalid date {args.date!r}, expected YYYY-MM-DD", file=sys.stderr)
            return 2
    else:
        day = datetime.now().date()
    with Database(DB_PATH) as db:
        events = db.timeline(day)
    _print_events(events)
    return 0


# ── Main ─────────────────────────────────────────────────────────────────


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="memento",
        description="searchable log of your foreground windows",
    )
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("run", help="run the recording daemon in the foreground")
    sub.add_parser("status", help="show daemon status and stats")

    p_logs = sub.add_parser("logs", help="show recent log output")
    p_logs.add_argument("-n", "--lines", type=int, default=30,
                        help="number of lines to show (default: 30)")

    p_search = sub.add_parser("search", help="search recorded activity")
    p_search.add_argument("query", nargs="*", help="e.g. 'slack yesterday', 'after Chrome'")
    p_search.add_argument("--limit", type=int, default=None,
                          help="maximum number of results (default: 100)")

    p_tag = sub.add_parser("tag", help="add a tag to an event")
    p_tag.add_argument("event_id", type=int)
    p_tag.add_argument("tag")

    p_bl = sub.add_parser("blacklist", help="show or edit the privacy blacklist")
    p_bl.add_argument("action", nargs="?", default="show",
                      choices=["show", "set", "add", "remove"])
    p_bl.add_argument("keywords", nargs="*")

    sub.add_parser("recent", help="list recent searches")

    p_stats = sub.add_parser("stats", help="per-app usage statistics")
    p_stats.add_argument("--limit", type=int, default=None,
                         help="number of apps to show (default: 20)")

    p_timeline = sub.add_parser("timeline", help="everything recorded on one day")
    p_timeline.add_argument("date", nargs="?", help="YYYY-MM-DD (default: today)")

    args = parser.parse_args(argv)

    commands = {
        "run": cmd_run,
        "status": cmd_status,
        "logs": cmd_logs,
        "search": cmd_search,
        "tag": cmd_tag,
        "blacklist": cmd_blacklist,
        "recent": cmd_recent,
        "stats": cmd_stats,
        "timeline": cmd_timeline,
    }

    if args.command not in commands:
        parser.print_help()
        return

    try:
        code = commands[args.command](args)
    except StorageError as e:
        print(f"memento: {e}", file=sys.stderr)
        code = 1
    if code:
        sys.exit(code)


if __name__ == "__main__":
    main()
