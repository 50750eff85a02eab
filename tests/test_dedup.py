"""Tests for memento.dedup — consecutive-sample suppression."""

from memento.dedup import DedupGuard


class TestDedupGuard:
    def test_first_sample_is_new(self):
        assert DedupGuard().check("Code", "main.py") is True

    def test_identical_repeat_rejected(self):
        g = DedupGuard()
        g.check("Code", "main.py")
        assert g.check("Code", "main.py") is False
        assert g.last_seen == ("Code", "main.py")

    def test_n_repeats_accept_once(self):
        g = DedupGuard()
        accepted = [g.check("Slack", "general") for _ in range(50)]
        assert accepted.count(True) == 1

    def test_title_change_is_new(self):
        g = DedupGuard()
        g.check("Code", "main.py")
        assert g.check("Code", "db.py") is True

    def test_return_to_earlier_window_is_new(self):
        g = DedupGuard()
        assert [g.check(*s) for s in [("A", "t"), ("B", "t"), ("A", "t")]] == [True, True, True]

    def test_none_and_empty_title_equal(self):
        g = DedupGuard()
        g.check("Finder", None)
        assert g.check("Finder", "") is False

    def test_remember_sets_state(self):
        g = DedupGuard()
        g.remember("1Password", "Vault")
        assert g.check("1Password", "Vault") is False

    def test_reset(self):
        g = DedupGuard()
        g.check("Code", "main.py")
        g.reset()
        assert g.last_seen is None
        assert g.check("Code", "main.py") is True

    def test_guards_are_independent(self):
        a, b = DedupGuard(), DedupGuard()
        a.check("Code", "main.py")
        assert b.check("Code", "main.py") is True
