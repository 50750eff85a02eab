"""Domain types shared by the store, ingestion and search."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class Event:
    """One recorded foreground-window sample."""
    id: int
    timestamp: datetime
    app: str
    title: str
    tags: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class AppStats:
    """Per-application aggregate over the whole event log."""
    app: str
    count: int
    first_seen: datetime
    last_seen: datetime
