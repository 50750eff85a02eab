"""Query parser — turns one raw search string into a ParsedQuery.

Grammar (whitespace-separated tokens, keywords case-insensitive):

    after:YYYY-MM-DD      lower bound at local midnight of that date
    before:YYYY-MM-DD     upper bound at local midnight of that date
    today | yesterday | last hour | last 24 hours | this week | last week
                          only when the phrase is the whole remaining query
    after <app name>      context anchor: events after that app's last use
    anything else         free-text terms, OR'ed together

Explicit after:/before: dates win over reserved phrases and over context
anchors; the losing words stay in the query as plain text. parse() never
raises: a token shaped like a date filter that is not a real calendar date
(after:2024-13-01) is kept as a literal term.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo

from memento.clock import local_date, local_midnight, utcnow

_DATE_TOKEN_RE = re.compile(
    r"^(after|before):([0-9]{4})-([0-9]{2})-([0-9]{2})$", re.IGNORECASE
)

_ANCHOR_KEYWORD = "after"


# ── parsed query variants ───────────────────────────────────────────────


@dataclass(frozen=True)
class TextTerms:
    """Lowercase terms matched against app and title; any term may match."""
    terms: tuple[str, ...]


@dataclass(frozen=True)
class TimeWindow:
    """Half-open instant range [start, end). A missing bound is unbounded."""
    start: datetime | None = None
    end: datetime | None = None

    def intersect(self, other: TimeWindow) -> TimeWindow:
        starts = [b for b in (self.start, other.start) if b is not None]
        ends = [b for b in (self.end, other.end) if b is not None]
        return TimeWindow(
            start=max(starts) if starts else None,
            end=min(ends) if ends else None,
        )

    def contains(self, instant: datetime) -> bool:
        if self.start is not None and instant < self.start:
            return False
        if self.end is not None and instant >= self.end:
            return False
        return True


@dataclass(frozen=True)
class ContextAnchor:
    """Events strictly after the most recent event of `app`."""
    app: str


@dataclass(frozen=True)
class ParsedQuery:
    """Intersection of at most one filter of each kind.

    A query with no filters matches every event.
    """
    text: TextTerms | None = None
    window: TimeWindow | None = None
    anchor: ContextAnchor | None = None

    @property
    def filters(self) -> tuple[TextTerms | TimeWindow | ContextAnchor, ...]:
        return tuple(f for f in (self.text, self.window, self.anchor) if f is not None)

    @property
    def is_empty(self) -> bool:
        return not self.filters


# ── parsing ─────────────────────────────────────────────────────────────


def _date_bound(token: str, tz: tzinfo | None) -> tuple[str, datetime] | None:
    """('after' | 'before', local midnight) for a valid date token, else None."""
    m = _DATE_TOKEN_RE.match(token)
    if not m:
        return None
    kind, year, month, day = m.groups()
    try:
        midnight = local_midnight(date(int(year), int(month), int(day)), tz)
    except (ValueError, OverflowError, OSError):
        return None
    return kind.lower(), midnight


def _relative_window(phrase: str, now: datetime, tz: tzinfo | None) -> TimeWindow | None:
    """Window for a reserved relative-time phrase, or None."""
    if phrase == "last hour":
        return TimeWindow(now - timedelta(hours=1), now)
    if phrase == "last 24 hours":
        return TimeWindow(now - timedelta(hours=24), now)

    today = local_date(now, tz)
    if phrase == "today":
        return TimeWindow(local_midnight(today, tz), local_midnight(today + timedelta(days=1), tz))
    if phrase == "yesterday":
        return TimeWindow(local_midnight(today - timedelta(days=1), tz), local_midnight(today, tz))

    # weeks start on Monday
    monday = today - timedelta(days=today.weekday())
    if phrase == "this week":
        return TimeWindow(local_midnight(monday, tz), local_midnight(monday + timedelta(days=7), tz))
    if phrase == "last week":
        return TimeWindow(local_midnight(monday - timedelta(days=7), tz), local_midnight(monday, tz))
    return None


def _terms(tokens: list[str]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for token in tokens:
        seen.setdefault(token.lower(), None)
    return tuple(seen)


def parse(raw: str | None, now: datetime | None = None, tz: tzinfo | None = None) -> ParsedQuery:
    """Parse a raw query string. Total: every input yields a ParsedQuery.

    `now` anchors the relative phrases (defaults to the current instant);
    `tz` is the zone whose midnights bound dates and days (defaults to the
    system local zone). Returned bounds are aware UTC datetimes.
    """
    if now is None:
        now = utcnow()
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    now = now.astimezone(timezone.utc)

    tokens = raw.split() if isinstance(raw, str) else []

    start: datetime | None = None
    end: datetime | None = None
    saw_after_date = False
    remaining: list[str] = []
    for token in tokens:
        bound = _date_bound(token, tz)
        if bound is None:
            remaining.append(token)
            continue
        kind, instant = bound
        if kind == "after":
            start = instant if start is None else max(start, instant)
            saw_after_date = True
        else:
            end = instant if end is None else min(end, instant)

    window: TimeWindow | None = None
    if start is not None or end is not None:
        window = TimeWindow(start, end)
    elif remaining:
        try:
            window = _relative_window(" ".join(remaining).lower(), now, tz)
        except (OverflowError, OSError):
            window = None
        if window is not None:
            remaining = []

    anchor: ContextAnchor | None = None
    if (not saw_after_date and len(remaining) >= 2
            and remaining[0].lower() == _ANCHOR_KEYWORD):
        anchor = ContextAnchor(" ".join(remaining[1:]))
        remaining = []

    terms = _terms(remaining)
    return ParsedQuery(
        text=TextTerms(terms) if terms else None,
        window=window,
        anchor=anchor,
    )
