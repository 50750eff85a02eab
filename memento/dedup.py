"""Dedup guard — suppresses consecutive identical foreground samples."""

from __future__ import annotations


class DedupGuard:
    """Remembers the last (app, title) pair seen by one ingestion loop.

    Only strictly consecutive repeats are rejected: A, A, B, A yields three
    "new" decisions. Time plays no part in the decision.
    """

    def __init__(self) -> None:
        self.last_seen: tuple[str, str] | None = None

    def check(self, app: str, title: str | None) -> bool:
        """True if the sample differs from the previous one (and record it)."""
        sample = (app, title or "")
        if sample == self.last_seen:
            return False
        self.last_seen = sample
        return True

    def remember(self, app: str, title: str | None) -> None:
        """Record a sample without deciding on it (e.g. a blacklisted window)."""
        self.last_seen = (app, title or "")

    def reset(self) -> None:
        self.last_seen = None
