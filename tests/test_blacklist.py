"""Tests for memento.blacklist — keyword filter and persisted keyword set."""

import pytest

from memento.blacklist import Blacklist, is_allowed, normalize_keywords
from memento.db import Database


@pytest.fixture
def db(tmp_path):
    d = Database(path=tmp_path / "test.db")
    d.open()
    yield d
    d.close()


class TestIsAllowed:
    def test_no_keywords_allows(self):
        assert is_allowed("Safari", "Google", set()) is True

    def test_keyword_in_app(self):
        assert is_allowed("1Password 7", "Vault", {"1password"}) is False

    def test_keyword_in_title(self):
        assert is_allowed("Safari", "Chase Online Banking", {"banking"}) is False

    def test_case_insensitive(self):
        assert is_allowed("safari", "x", {"SAFARI"}) is False

    def test_substring_match(self):
        assert is_allowed("Keychain Access", "", {"chain"}) is False

    def test_unrelated_keyword_allows(self):
        assert is_allowed("Code", "main.py", {"bank", "password"}) is True

    def test_none_title_treated_as_empty(self):
        assert is_allowed("Code", None, {"main"}) is True
        assert is_allowed("Code", None, {"code"}) is False

    def test_blank_keywords_ignored(self):
        assert is_allowed("Code", "main.py", {"", "   "}) is True

    def test_malformed_input_does_not_raise(self):
        assert is_allowed(None, None, None) is True
        assert is_allowed("Code", "x", [None, 42, "zzz"]) is True

    def test_non_iterable_keywords_allow(self):
        assert is_allowed("Code", "x", 42) is True
        assert is_allowed("Code", "x", object()) is True

    def test_idempotent(self):
        keywords = {"secret"}
        results = {is_allowed("Notes", "My secret plan", keywords) for _ in range(5)}
        assert results == {False}


class TestNormalizeKeywords:
    def test_strips_and_drops_blanks(self):
        assert normalize_keywords(["  bank ", "", "   "]) == {"bank"}

    def test_collapses_case_duplicates(self):
        assert normalize_keywords(["Bank", "bank", "BANK"]) == {"Bank"}


class TestBlacklist:
    def test_starts_empty(self, db):
        bl = Blacklist(db)
        assert bl.keywords == frozenset()
        assert bl.allows("Anything", "at all")

    def test_replace_persists(self, db):
        bl = Blacklist(db)
        bl.replace(["bank", " Password "])
        assert bl.keywords == {"bank", "Password"}
        assert db.get_blacklist() == {"bank", "Password"}

    def test_load_from_store(self, db):
        db.set_blacklist({"zoom"})
        bl = Blacklist(db)
        bl.load()
        assert not bl.allows("zoom.us", "Meeting")

    def test_second_instance_sees_changes_after_load(self, db):
        writer = Blacklist(db)
        reader = Blacklist(db)
        reader.load()
        writer.replace(["slack"])
        assert reader.allows("Slack", "general")
        reader.load()
        assert not reader.allows("Slack", "general")
