"""Search executor — runs a ParsedQuery against the event store.

Read-only. Results are the most recent matching events first, capped at
SEARCH_LIMIT rows.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, tzinfo

import memento.config as config
from memento.clock import to_epoch
from memento.db import Database
from memento.models import Event
from memento.query import ParsedQuery, parse

log = logging.getLogger(__name__)

# The unicode61 tokenizer indexes runs of letters and digits; a term without
# any of them can never match.
_INDEXABLE_RE = re.compile(r"[^\W_]")


def _quote(term: str) -> str:
    return '"' + term.replace('"', '""') + '"'


def build_match(terms) -> str | None:
    """FTS5 expression OR-ing each term as a quoted phrase, or None if nothing is indexable.

    Quoting keeps user input from being read as FTS5 syntax (AND, NEAR, *, -).
    """
    phrases = [_quote(t) for t in terms if _INDEXABLE_RE.search(t)]
    if not phrases:
        return None
    return " OR ".join(phrases)


def execute(query: ParsedQuery, db: Database, limit: int | None = None) -> list[Event]:
    """Return events matching every filter in `query`, newest first."""
    if limit is None:
        limit = config.SEARCH_LIMIT

    after: float | None = None
    if query.anchor is not None:
        after = db.anchor_timestamp(query.anchor.app)
        if after is None:
            log.debug("no event matches context anchor %r", query.anchor.app)
            return []

    match: str | None = None
    if query.text is not None:
        match = build_match(query.text.terms)
        if match is None:
            return []

    start = end = None
    if query.window is not None:
        if query.window.start is not None:
            start = to_epoch(query.window.start)
        if query.window.end is not None:
            end = to_epoch(query.window.end)
        if start is not None and end is not None and start >= end:
            return []

    return db.find_events(match=match, start=start, end=end, after=after, limit=limit)


def search(
    raw: str,
    db: Database,
    now: datetime | None = None,
    tz: tzinfo | None = None,
    limit: int | None = None,
) -> list[Event]:
    """Parse and execute a raw query string in one call."""
    return execute(parse(raw, now=now, tz=tz), db, limit=limit)
