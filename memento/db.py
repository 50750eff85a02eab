"""SQLite event store — schema, atomic event writes, full-text lookup.

Production hardening:
- Writes serialized through one connection and a dedicated lock
- WAL journal; reads borrow a read-only connection from a small pool so
  they never wait on the writer
- An event row and its FTS5 entry are written in one transaction by
  insert_event(); there is no other way to add an event
- Schema versioning for future migrations
- Context-manager protocol for clean resource handling
- Parameterized queries only
"""

import json
import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from datetime import date, datetime, timedelta, tzinfo
from pathlib import Path

import memento.config as config
from memento.clock import from_epoch, local_midnight, to_epoch
from memento.config import DB_PATH
from memento.models import AppStats, Event

log = logging.getLogger(__name__)

SCHEMA_VERSION = 1

_VALID_TABLES = frozenset({"events", "config", "daemon_health"})

_EVENT_COLUMNS = "id, timestamp, app, title, tags"

# idle read-only connections kept between reads; extra ones are closed
READER_POOL_SIZE = 4

_SCHEMA = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_meta (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
INSERT OR IGNORE INTO schema_meta (key, value) VALUES ('version', '1');

CREATE TABLE IF NOT EXISTS events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp REAL NOT NULL,
    app TEXT NOT NULL,
    title TEXT NOT NULL DEFAULT '',
    tags TEXT
);
CREATE INDEX IF NOT EXISTS idx_events_ts ON events(timestamp);
CREATE INDEX IF NOT EXISTS idx_events_app ON events(app);

-- Derived index over app/title, maintained only by Database.insert_event
CREATE VIRTUAL TABLE IF NOT EXISTS events_fts USING fts5(
    app, title, content='events', content_rowid='id'
);

-- Small key/value store: blacklist, recent searches
CREATE TABLE IF NOT EXISTS config (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS daemon_health (
    id INTEGER PRIMARY KEY,
    timestamp REAL NOT NULL,
    event_type TEXT,
    details TEXT
);
CREATE INDEX IF NOT EXISTS idx_health_ts ON daemon_health(timestamp);
"""


class StorageError(RuntimeError):
    """A store operation failed at the SQLite layer (I/O, corruption, busy)."""


@contextmanager
def _storage_errors(operation: str):
    try:
        yield
    except sqlite3.Error as e:
        raise StorageError(f"{operation} failed: {e}") from e


def _casefold(value: str | None) -> str | None:
    # SQLite's lower() only folds ASCII
    return value.casefold() if isinstance(value, str) else value


def _load_tags(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return ()
    try:
        tags = json.loads(raw)
    except json.JSONDecodeError:
        # single plain-text tag written by older versions
        return (raw,)
    if isinstance(tags, list):
        return tuple(str(t) for t in tags)
    return (str(tags),)


def _row_to_event(row: tuple) -> Event:
    event_id, ts, app, title, tags = row
    return Event(
        id=event_id,
        timestamp=from_epoch(ts),
        app=app,
        title=title or "",
        tags=_load_tags(tags),
    )


class Database:
    """Thread-safe SQLite event store for memento.

    Usage:
        db = Database()
        db.open()
        ...
        db.close()

    Or as a context manager:
        with Database() as db:
            ...
    """

    def __init__(self, path: Path | None = None):
        self.path = path or DB_PATH
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()
        self._idle_readers: list[sqlite3.Connection] = []
        self._readers_lock = threading.Lock()

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # ── lifecycle ───────────────────────────────────────────────────────

    def open(self) -> None:
        """Open the database, apply pragmas, and ensure schema exists."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with _storage_errors("open"):
            self._conn = sqlite3.connect(
                str(self.path),
                check_same_thread=False,
                timeout=10.0,
            )
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA synchronous=NORMAL")
            self._conn.execute("PRAGMA busy_timeout=5000")
            self._conn.execute("PRAGMA cache_size=-8000")  # 8 MB cache
            self._conn.executescript(_SCHEMA)
            self._conn.commit()
        log.info("database opened at %s (schema v%d)", self.path, SCHEMA_VERSION)

    def close(self) -> None:
        """Close the writer and every idle reader connection safely."""
        with self._readers_lock:
            readers, self._idle_readers = self._idle_readers, []
        for reader in readers:
            try:
                reader.close()
            except sqlite3.Error:
                log.exception("error closing reader connection")
        with self._lock:
            if self._conn:
                try:
                    self._conn.execute("PRAGMA optimize")
                    self._conn.close()
                except sqlite3.Error:
                    log.exception("error during database close")
                finally:
                    self._conn = None
                    log.info("database closed")

    def _ensure_conn(self) -> sqlite3.Connection:
        """Return the active writer connection, raising if closed."""
        if self._conn is None:
            raise RuntimeError("database is not open — call .open() first")
        return self._conn

    def _open_reader(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            str(self.path),
            check_same_thread=False,
            timeout=10.0,
        )
        conn.execute("PRAGMA busy_timeout=5000")
        conn.execute("PRAGMA query_only=ON")
        conn.create_function("casefold", 1, _casefold, deterministic=True)
        return conn

    @contextmanager
    def _reading(self, operation: str):
        """Lend a read-only connection for one operation.

        Connections come from a small idle pool; each is used by one thread
        at a time and returned (or closed, once the pool is full) afterwards.
        """
        self._ensure_conn()
        with self._readers_lock:
            conn = self._idle_readers.pop() if self._idle_readers else None
        with _storage_errors(operation):
            if conn is None:
                conn = self._open_reader()
            try:
                yield conn
            finally:
                with self._readers_lock:
                    keep = (self._conn is not None
                            and len(self._idle_readers) < READER_POOL_SIZE)
                    if keep:
                        self._idle_readers.append(conn)
                if not keep:
                    conn.close()

    # ── events ──────────────────────────────────────────────────────────

    def insert_event(self, app: str, title: str | None,
                     timestamp: datetime | None = None) -> Event:
        """Append one event and its full-text entry in a single transaction."""
        if not app or not app.strip():
            raise ValueError("app name must be non-empty")
        title = title or ""
        ts = to_epoch(timestamp) if timestamp is not None else time.time()

        conn = self._ensure_conn()
        with self._lock, _storage_errors("insert_event"):
            with conn:
                cur = conn.execute(
                    "INSERT INTO events (timestamp, app, title) VALUES (?, ?, ?)",
                    (ts, app, title),
                )
                event_id = cur.lastrowid
                conn.execute(
                    "INSERT INTO events_fts (rowid, app, title) VALUES (?, ?, ?)",
                    (event_id, app, title),
                )
        return Event(id=event_id, timestamp=from_epoch(ts), app=app, title=title)

    def append_tag(self, event_id: int, tag: str) -> bool:
        """Append a tag to an event. Returns False when the event does not exist.

        Only the tags column changes, so the full-text entry is untouched.
        """
        tag = (tag or "").strip()
        if not tag:
            raise ValueError("tag must be non-empty")

        conn = self._ensure_conn()
        with self._lock, _storage_errors("append_tag"):
            with conn:
                row = conn.execute(
                    "SELECT tags FROM events WHERE id = ?", (event_id,)
                ).fetchone()
                if row is None:
                    return False
                tags = list(_load_tags(row[0]))
                if tag not in tags:
                    tags.append(tag)
                    conn.execute(
                        "UPDATE events SET tags = ? WHERE id = ?",
                        (json.dumps(tags), event_id),
                    )
        return True

    def get_event(self, event_id: int) -> Event | None:
        with self._reading("get_event") as conn:
            row = conn.execute(
                f"SELECT {_EVENT_COLUMNS} FROM events WHERE id = ?", (event_id,)
            ).fetchone()
        return _row_to_event(row) if row else None

    def anchor_timestamp(self, app: str) -> float | None:
        """Epoch timestamp of the most recent event whose app contains `app`."""
        if not app or not app.strip():
            return None
        with self._reading("anchor lookup") as conn:
            row = conn.execute(
                """SELECT timestamp FROM events
                   WHERE instr(casefold(app), ?) > 0
                   ORDER BY timestamp DESC, id DESC
                   LIMIT 1""",
                (app.strip().casefold(),),
            ).fetchone()
        return row[0] if row else None

    def latest_timestamp(self) -> datetime | None:
        """Time of the newest stored event, or None for an empty store."""
        with self._reading("latest_timestamp") as conn:
            row = conn.execute("SELECT MAX(timestamp) FROM events").fetchone()
        return from_epoch(row[0]) if row and row[0] is not None else None

    def find_events(
        self,
        match: str | None = None,
        start: float | None = None,
        end: float | None = None,
        after: float | None = None,
        limit: int | None = None,
    ) -> list[Event]:
        """Most recent events satisfying every given predicate.

        match  — FTS5 expression over app/title
        start  — inclusive lower epoch bound
        end    — exclusive upper epoch bound
        after  — exclusive lower epoch bound (context anchors)
        """
        if limit is None:
            limit = config.SEARCH_LIMIT
        clauses: list[str] = []
        params: list = []
        if match is not None:
            clauses.append("id IN (SELECT rowid FROM events_fts WHERE events_fts MATCH ?)")
            params.append(match)
        if start is not None:
            clauses.append("timestamp >= ?")
            params.append(start)
        if end is not None:
            clauses.append("timestamp < ?")
            params.append(end)
        if after is not None:
            clauses.append("timestamp > ?")
            params.append(after)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        sql = (
            f"SELECT {_EVENT_COLUMNS} FROM events {where} "
            "ORDER BY timestamp DESC, id DESC LIMIT ?"
        )
        params.append(max(int(limit), 0))

        with self._reading("search") as conn:
            rows = conn.execute(sql, params).fetchall()
        return [_row_to_event(r) for r in rows]

    def events_by_app(self) -> list[Event]:
        """Every event, grouped by app name and most recent first within an app."""
        with self._reading("events_by_app") as conn:
            rows = conn.execute(
                f"SELECT {_EVENT_COLUMNS} FROM events "
                "ORDER BY app COLLATE NOCASE, timestamp DESC, id DESC"
            ).fetchall()
        return [_row_to_event(r) for r in rows]

    def app_stats(self, limit: int | None = None) -> list[AppStats]:
        """Event count and first/last sighting per app, busiest first."""
        if limit is None:
            limit = config.STATS_LIMIT
        with self._reading("app_stats") as conn:
            rows = conn.execute(
                """SELECT app, COUNT(*) AS n, MIN(timestamp), MAX(timestamp)
                   FROM events
                   GROUP BY app
                   ORDER BY n DESC, app
                   LIMIT ?""",
                (limit,),
            ).fetchall()
        return [
            AppStats(app=app, count=n, first_seen=from_epoch(first), last_seen=from_epoch(last))
            for app, n, first, last in rows
        ]

    def timeline(self, day: date, tz: tzinfo | None = None) -> list[Event]:
        """Events of one local calendar day in chronological order."""
        start = local_midnight(day, tz)
        end = local_midnight(day + timedelta(days=1), tz)
        with self._reading("timeline") as conn:
            rows = conn.execute(
                f"SELECT {_EVENT_COLUMNS} FROM events "
                "WHERE timestamp >= ? AND timestamp < ? "
                "ORDER BY timestamp, id",
                (to_epoch(start), to_epoch(end)),
            ).fetchall()
        return [_row_to_event(r) for r in rows]

    # ── config: blacklist + recent searches ─────────────────────────────

    @staticmethod
    def _load_json(conn: sqlite3.Connection, key: str, default):
        row = conn.execute("SELECT value FROM config WHERE key = ?", (key,)).fetchone()
        if row is None:
            return default
        try:
            return json.loads(row[0])
        except json.JSONDecodeError:
            log.warning("ignoring malformed config value for %r", key)
            return default

    @staticmethod
    def _store_json(conn: sqlite3.Connection, key: str, value) -> None:
        conn.execute(
            """INSERT INTO config (key, value) VALUES (?, ?)
               ON CONFLICT(key) DO UPDATE SET value = excluded.value""",
            (key, json.dumps(value)),
        )

    def get_blacklist(self) -> set[str]:
        with self._reading("get_blacklist") as conn:
            keywords = self._load_json(conn, "blacklist", [])
        if not isinstance(keywords, list):
            return set()
        return {str(k) for k in keywords}

    def set_blacklist(self, keywords) -> None:
        conn = self._ensure_conn()
        with self._lock, _storage_errors("set_blacklist"):
            with conn:
                self._store_json(conn, "blacklist", sorted(set(keywords)))

    def get_recent_searches(self) -> list[str]:
        with self._reading("get_recent_searches") as conn:
            recent = self._load_json(conn, "recent_searches", [])
        return [str(q) for q in recent] if isinstance(recent, list) else []

    def save_recent_search(self, query: str) -> list[str]:
        """Push a query to the front of the recent list, evicting the oldest.

        A repeated query moves to the front instead of being duplicated.
        Blank queries are not recorded.
        """
        query = (query or "").strip()
        if not query:
            return self.get_recent_searches()

        conn = self._ensure_conn()
        with self._lock, _storage_errors("save_recent_search"):
            with conn:
                recent = self._load_json(conn, "recent_searches", [])
                if not isinstance(recent, list):
                    recent = []
                recent = [q for q in recent if q != query]
                recent.insert(0, query)
                del recent[config.RECENT_SEARCHES_MAX:]
                self._store_json(conn, "recent_searches", recent)
        return recent

    # ── health ──────────────────────────────────────────────────────────

    def log_health(self, ts: float, event_type: str, details: str = "") -> None:
        """Record a daemon health event."""
        conn = self._ensure_conn()
        with self._lock, _storage_errors("log_health"):
            with conn:
                conn.execute(
                    "INSERT INTO daemon_health (timestamp, event_type, details) VALUES (?, ?, ?)",
                    (ts, event_type, details),
                )

    # ── reads (for verification / debugging) ────────────────────────────

    def count(self, table: str) -> int:
        """Return the row count for a table."""
        if table not in _VALID_TABLES:
            raise ValueError(f"unknown table: {table!r}")
        with self._reading("count") as conn:
            cur = conn.execute(f"SELECT COUNT(*) FROM {table}")
            return cur.fetchone()[0]

    def check_index(self) -> tuple[int, int]:
        """Return (event rows, indexed documents); equal when the index is in sync."""
        # one statement, one snapshot
        with self._reading("check_index") as conn:
            events, indexed = conn.execute(
                "SELECT (SELECT COUNT(*) FROM events), "
                "(SELECT COUNT(*) FROM events_fts_docsize)"
            ).fetchone()
        return events, indexed
