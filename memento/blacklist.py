"""Privacy blacklist — keyword filter applied before anything is recorded.

Keywords are case-insensitive substrings matched against both the app
name and the window title. The set is kept in memory for the ingestion
loop and mirrored to the store's config table.
"""

from __future__ import annotations

import logging
import threading
from typing import Iterable

from memento.db import Database

log = logging.getLogger(__name__)


def _folded(value) -> str:
    if value is None:
        return ""
    return (value if isinstance(value, str) else str(value)).lower()


def is_allowed(app: str | None, title: str | None, keywords: Iterable[str]) -> bool:
    """False if any keyword occurs (case-insensitively) in app or title."""
    app_l = _folded(app)
    title_l = _folded(title)
    try:
        candidates = iter(keywords if keywords is not None else ())
    except TypeError:
        return True
    for keyword in candidates:
        if not isinstance(keyword, str):
            continue
        needle = keyword.strip().lower()
        if not needle:
            continue
        if needle in app_l or needle in title_l:
            return False
    return True


def normalize_keywords(keywords: Iterable[str]) -> set[str]:
    """Strip, drop blanks, and collapse case-insensitive duplicates (first spelling wins)."""
    seen: dict[str, str] = {}
    for keyword in keywords:
        keyword = str(keyword).strip()
        if keyword and keyword.lower() not in seen:
            seen[keyword.lower()] = keyword
    return set(seen.values())


class Blacklist:
    """In-memory keyword set bound to a Database."""

    def __init__(self, db: Database):
        self._db = db
        self._lock = threading.Lock()
        self._keywords: frozenset[str] = frozenset()

    @property
    def keywords(self) -> frozenset[str]:
        return self._keywords

    def load(self) -> frozenset[str]:
        """Refresh the in-memory set from the store."""
        keywords = frozenset(normalize_keywords(self._db.get_blacklist()))
        with self._lock:
            self._keywords = keywords
        log.info("blacklist loaded (%d keywords)", len(keywords))
        return keywords

    def replace(self, keywords: Iterable[str]) -> frozenset[str]:
        """Persist a new keyword set, then swap it in."""
        normalized = frozenset(normalize_keywords(keywords))
        with self._lock:
            self._db.set_blacklist(normalized)
            self._keywords = normalized
        log.info("blacklist updated (%d keywords)", len(normalized))
        return normalized

    def allows(self, app: str | None, title: str | None) -> bool:
        return is_allowed(app, title, self._keywords)
