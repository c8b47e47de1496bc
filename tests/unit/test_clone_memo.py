"""Unit tests for the per-operation clone memo."""

from src.domains.catalog.memo import CloneMemo
from src.domains.catalog.models import ContentKind


class TestCloneMemo:
    """Tests for CloneMemo bookkeeping."""

    def test_lookup_misses_on_empty_memo(self):
        memo = CloneMemo()

        assert memo.lookup(ContentKind.EXERCISE, 42) is None
        assert len(memo) == 0

    def test_remember_then_lookup(self):
        memo = CloneMemo()

        memo.remember(ContentKind.EXERCISE, 42, 101, created=True)

        assert memo.lookup(ContentKind.EXERCISE, 42) == 101
        assert (ContentKind.EXERCISE, 42) in memo

    def test_kinds_are_separate_namespaces(self):
        """The same numeric id in two tables must not collide."""
        memo = CloneMemo()

        memo.remember(ContentKind.EXERCISE, 7, 70)
        memo.remember(ContentKind.WORKOUT, 7, 700)

        assert memo.lookup(ContentKind.EXERCISE, 7) == 70
        assert memo.lookup(ContentKind.WORKOUT, 7) == 700
        assert memo.lookup(ContentKind.VIDEO, 7) is None

    def test_clones_lists_only_created_entries(self):
        memo = CloneMemo()

        memo.remember(ContentKind.EXERCISE, 1, 1)  # owned, reused as is
        memo.remember(ContentKind.EXERCISE, 2, 20)  # earlier clone reused
        memo.remember(ContentKind.EXERCISE, 3, 30, created=True)
        memo.remember(ContentKind.VIDEO, 4, 40, created=True)

        assert memo.clones(ContentKind.EXERCISE) == {3: 30}
        assert memo.clones() == {3: 30, 4: 40}
        assert len(memo) == 4

    def test_clear(self):
        memo = CloneMemo()
        memo.remember(ContentKind.VIDEO, 4, 40, created=True)

        memo.clear()

        assert len(memo) == 0
        assert memo.clones() == {}
