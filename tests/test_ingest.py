"""Tests for memento.ingest — tick pipeline and background loop lifecycle."""

import time
from datetime import datetime, timedelta, timezone

import pytest

from memento.blacklist import Blacklist
from memento.db import Database, StorageError
from memento.ingest import IngestionLoop, TickOutcome


@pytest.fixture
def db(tmp_path):
    d = Database(path=tmp_path / "test.db")
    d.open()
    yield d
    d.close()


@pytest.fixture
def blacklist(db):
    return Blacklist(db)


def _scripted(samples):
    """Sampler returning the given samples in order, then None forever."""
    it = iter(samples)
    return lambda: next(it, None)


class TestTick:
    def test_records_new_window(self, db, blacklist):
        loop = IngestionLoop(db, _scripted([("Code", "main.py")]), blacklist)
        assert loop.tick() is TickOutcome.RECORDED
        assert db.count("events") == 1
        assert loop.last_event.app == "Code"

    def test_identical_samples_write_once(self, db, blacklist):
        loop = IngestionLoop(db, lambda: ("Slack", "general"), blacklist)
        outcomes = [loop.tick() for _ in range(10)]
        assert outcomes[0] is TickOutcome.RECORDED
        assert set(outcomes[1:]) == {TickOutcome.DUPLICATE}
        assert db.count("events") == 1

    def test_returning_window_is_recorded_again(self, db, blacklist):
        loop = IngestionLoop(db, _scripted([("A", "x"), ("B", "y"), ("A", "x")]), blacklist)
        for _ in range(3):
            loop.tick()
        assert db.count("events") == 3

    def test_no_window_skips(self, db, blacklist):
        loop = IngestionLoop(db, lambda: None, blacklist)
        assert loop.tick() is TickOutcome.NO_WINDOW
        assert db.count("events") == 0

    def test_empty_app_skips(self, db, blacklist):
        loop = IngestionLoop(db, lambda: ("", "title"), blacklist)
        assert loop.tick() is TickOutcome.NO_WINDOW

    def test_sampler_error_is_silent(self, db, blacklist):
        def broken():
            raise PermissionError("accessibility not granted")

        loop = IngestionLoop(db, broken, blacklist)
        assert loop.tick() is TickOutcome.NO_WINDOW
        assert db.count("events") == 0

    def test_none_title_recorded_as_empty(self, db, blacklist):
        loop = IngestionLoop(db, lambda: ("Finder", None), blacklist)
        loop.tick()
        assert db.find_events()[0].title == ""

    def test_blacklisted_window_not_written(self, db, blacklist):
        blacklist.replace(["1password"])
        loop = IngestionLoop(db, lambda: ("1Password 7", "Vault"), blacklist)
        assert loop.tick() is TickOutcome.BLOCKED
        assert db.count("events") == 0

    def test_unblacklisting_still_dedups(self, db, blacklist):
        """A window seen while blacklisted is not recorded when the keyword is removed."""
        blacklist.replace(["bank"])
        loop = IngestionLoop(db, lambda: ("Safari", "My Bank"), blacklist)
        assert loop.tick() is TickOutcome.BLOCKED
        blacklist.replace([])
        assert loop.tick() is TickOutcome.DUPLICATE
        assert db.count("events") == 0

    def test_timestamps_never_go_backwards(self, db, blacklist):
        base = datetime(2024, 6, 10, 15, 0, tzinfo=timezone.utc)
        clock_values = iter([base, base - timedelta(seconds=30)])
        loop = IngestionLoop(
            db, _scripted([("A", "1"), ("B", "2")]), blacklist,
            clock=lambda: next(clock_values),
        )
        loop.tick()
        loop.tick()
        first, second = sorted(db.find_events(), key=lambda e: e.id)
        assert second.timestamp >= first.timestamp

    def test_restart_does_not_write_before_stored_events(self, db, blacklist):
        stored = db.insert_event("Code", "main.py", datetime(2024, 6, 10, 15, 0, tzinfo=timezone.utc))
        behind = datetime(2024, 6, 10, 14, 0, tzinfo=timezone.utc)
        loop = IngestionLoop(db, lambda: ("Slack", "general"), blacklist, clock=lambda: behind)
        assert loop.tick() is TickOutcome.RECORDED
        assert loop.last_event.timestamp >= stored.timestamp

    def test_uses_clock(self, db, blacklist):
        fixed = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)
        loop = IngestionLoop(db, lambda: ("Code", "x"), blacklist, clock=lambda: fixed)
        loop.tick()
        assert db.find_events()[0].timestamp == fixed

    def test_store_failure_propagates_and_retries(self, db, blacklist, monkeypatch):
        loop = IngestionLoop(db, lambda: ("Code", "main.py"), blacklist)

        def failing_insert(*args, **kwargs):
            raise StorageError("insert_event failed: disk I/O error")

        monkeypatch.setattr(db, "insert_event", failing_insert)
        with pytest.raises(StorageError):
            loop.tick()
        monkeypatch.undo()

        # the failed sample was forgotten, so the same window is retried
        assert loop.tick() is TickOutcome.RECORDED
        assert db.count("events") == 1


class TestLoopLifecycle:
    def test_start_stop(self, db, blacklist):
        calls = []

        def sampler():
            calls.append(1)
            return ("App", f"title {len(calls)}")

        loop = IngestionLoop(db, sampler, blacklist, interval=0.05)
        loop.start()
        assert loop.running
        time.sleep(0.3)
        loop.stop()
        assert not loop.running
        assert len(calls) >= 2
        assert db.count("events") == len(calls)

    def test_not_running_before_start(self, db, blacklist):
        loop = IngestionLoop(db, lambda: None, blacklist, interval=0.05)
        assert not loop.running

    def test_store_errors_do_not_kill_thread(self, db, blacklist, monkeypatch):
        def failing_insert(*args, **kwargs):
            raise StorageError("insert_event failed: database is locked")

        monkeypatch.setattr(db, "insert_event", failing_insert)
        loop = IngestionLoop(db, lambda: ("Code", "main.py"), blacklist, interval=0.05)
        loop.start()
        time.sleep(0.25)
        assert loop.running
        assert loop._thread.is_alive()
        loop.stop()

    def test_default_interval_from_config(self, db, blacklist, monkeypatch):
        import memento.config as cfg
        monkeypatch.setattr(cfg, "SAMPLE_INTERVAL", 7.0)
        loop = IngestionLoop(db, lambda: None, blacklist)
        assert loop.interval == 7.0
