"""Ingestion loop — samples the foreground window and records changes.

Each tick:
1. Ask the sampler for the current (app, title). No window, or a sampler
   error, skips the tick silently.
2. Blacklisted samples are remembered by the dedup guard but never written.
3. A sample identical to the previous one is skipped.
4. Anything else becomes one event in the store.

The loop runs on its own daemon thread at a fixed wall-clock period.
Missed ticks are dropped, not replayed.
"""

from __future__ import annotations

import enum
import logging
import threading
import time
from datetime import datetime
from typing import Callable

import memento.config as config
from memento.blacklist import Blacklist
from memento.clock import utcnow
from memento.db import Database
from memento.dedup import DedupGuard
from memento.models import Event

log = logging.getLogger(__name__)

Sampler = Callable[[], "tuple[str, str] | None"]


class TickOutcome(enum.Enum):
    NO_WINDOW = "no_window"
    BLOCKED = "blocked"
    DUPLICATE = "duplicate"
    RECORDED = "recorded"


class IngestionLoop:
    """Composes sampler, blacklist, dedup guard and store into one periodic task."""

    name = "ingest"

    def __init__(
        self,
        db: Database,
        sampler: Sampler,
        blacklist: Blacklist,
        interval: float | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.sampler = sampler
        self.blacklist = blacklist
        self.interval = interval if interval is not None else config.SAMPLE_INTERVAL
        self.clock = clock
        self.dedup = DedupGuard()
        self.last_event: Event | None = None
        self._last_ts: datetime | None = None
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()

    # ── one cycle ───────────────────────────────────────────────────────
    def tick(self) -> TickOutcome:
        """Run one sampling cycle. Store failures propagate to the caller."""
        try:
            sample = self.sampler()
            if not sample:
                return TickOutcome.NO_WINDOW
            app, title = sample
        except Exception:
            log.debug("[%s] sampler unavailable", self.name, exc_info=True)
            return TickOutcome.NO_WINDOW
        if not app:
            return TickOutcome.NO_WINDOW
        title = title or ""

        if not self.blacklist.allows(app, title):
            self.dedup.remember(app, title)
            return TickOutcome.BLOCKED

        if not self.dedup.check(app, title):
            return TickOutcome.DUPLICATE

        now = self.clock()
        if self._last_ts is None:
            # survive restarts with a clock behind the newest stored event
            self._last_ts = self.db.latest_timestamp()
        if self._last_ts is not None and now < self._last_ts:
            now = self._last_ts
        try:
            event = self.db.insert_event(app, title, now)
        except Exception:
            # forget the sample so the next tick retries this window
            self.dedup.reset()
            raise

        self._last_ts = now
        self.last_event = event
        log.debug("[%s] recorded #%d %s — %s", self.name, event.id, app, title)
        return TickOutcome.RECORDED

    # ── lifecycle ───────────────────────────────────────────────────────
    def start(self) -> None:
        """Start sampling in a background daemon thread."""
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop, name="ingest-loop", daemon=True
        )
        self._thread.start()
        log.info("[%s] started (interval=%.1fs)", self.name, self.interval)

    def stop(self) -> None:
        """Signal the loop to stop and wait for its thread."""
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=self.interval + 2)
        self._thread = None
        log.info("[%s] stopped", self.name)

    @property
    def running(self) -> bool:
        return self._thread is not None and not self._stop_event.is_set()

    # ── internal ────────────────────────────────────────────────────────
    def _run_loop(self) -> None:
        next_tick = time.monotonic()
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                log.exception("[%s] tick failed", self.name)

            next_tick += self.interval
            now = time.monotonic()
            if now > next_tick:
                missed = int((now - next_tick) // self.interval) + 1
                next_tick += missed * self.interval
                log.debug("[%s] skipped %d missed tick(s)", self.name, missed)
            self._stop_event.wait(timeout=next_tick - now)
