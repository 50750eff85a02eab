"""memento daemon — main orchestrator.

Opens the event store, loads the privacy blacklist, starts the ingestion
loop and runs a heartbeat loop until signalled.

Supports SIGHUP to reload the blacklist from the store, which is how the
CLI pushes blacklist edits into a running daemon.
"""

import logging
import os
import signal
import sys
import time

from memento.config import (
    DATA_DIR, LOG_PATH, PID_PATH,
    HEALTH_HEARTBEAT_INTERVAL,
)
from memento.blacklist import Blacklist
from memento.db import Database, StorageError
from memento.ingest import IngestionLoop

log = logging.getLogger("memento")


def _setup_logging() -> None:
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(str(LOG_PATH)),
            logging.StreamHandler(sys.stderr),
        ],
    )


def _write_pid() -> None:
    PID_PATH.write_text(str(os.getpid()))


def _remove_pid() -> None:
    PID_PATH.unlink(missing_ok=True)


class Daemon:
    """Main daemon process that owns the DB, the blacklist and the ingestion loop."""

    def __init__(self, sampler=None):
        self.db = Database()
        self.blacklist = Blacklist(self.db)
        self.sampler = sampler
        self.loop: IngestionLoop | None = None
        self._running = False

    def start(self) -> None:
        _setup_logging()
        _write_pid()
        log.info("memento daemon starting (pid=%d)", os.getpid())

        if self.sampler is None:
            from memento.sampler import sample_foreground
            self.sampler = sample_foreground

        self.db.open()
        self.blacklist.load()
        self.db.log_health(time.time(), "startup", f"pid={os.getpid()}")

        self.loop = IngestionLoop(self.db, self.sampler, self.blacklist)
        self.loop.start()

        self._running = True
        signal.signal(signal.SIGTERM, self._handle_signal)
        signal.signal(signal.SIGINT, self._handle_signal)
        signal.signal(signal.SIGHUP, self._handle_reload)

        self._run_heartbeat_loop()

    def stop(self) -> None:
        log.info("memento daemon shutting down")
        self._running = False
        if self.loop:
            self.loop.stop()
        try:
            self.db.log_health(time.time(), "shutdown", "clean")
        except StorageError:
            log.exception("could not record shutdown")
        self.db.close()
        _remove_pid()
        log.info("memento daemon stopped")

    def reload(self) -> None:
        """Re-read the blacklist from the store.

        Trigger with: kill -HUP $(cat data/memento.pid)
        """
        log.info("memento daemon reloading")
        keywords = self.blacklist.load()
        self.db.log_health(time.time(), "reload", f"blacklist={len(keywords)}")

    def _run_heartbeat_loop(self) -> None:
        last_heartbeat = time.time()
        while self._running:
            time.sleep(1)
            now = time.time()
            if now - last_heartbeat >= HEALTH_HEARTBEAT_INTERVAL:
                try:
                    self.db.log_health(now, "heartbeat")
                except StorageError:
                    log.exception("heartbeat failed")
                last_heartbeat = now

    def _handle_signal(self, signum, frame) -> None:
        log.info("received signal %d", signum)
        self.stop()
        sys.exit(0)

    def _handle_reload(self, signum, frame) -> None:
        log.info("received SIGHUP — reloading")
        try:
            self.reload()
        except StorageError:
            log.exception("reload failed")


def main() -> None:
    daemon = Daemon()
    daemon.start()


if __name__ == "__main__":
    main()
