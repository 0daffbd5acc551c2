"""
Tests for the Aggregate Reader.

Tests cover:
- Streak computation ordered by event start time
- Trailing week/month windows
- Keyset-paginated history (stability, ties, cursors)
- Per-event summary
- Leaderboard ordering
"""

import pytest
from datetime import timedelta

from core.clock import to_iso8601
from core.exceptions import InvalidCursorError
from database.models import TransactionReason
from settlement.aggregates import (
    AggregateReader,
    accuracy_of,
    best_streak,
    current_streak,
    decode_cursor,
    encode_cursor,
)
from settlement.config import AggregateConfig
from settlement.engine import SettlementEngine


# =============================================================
# TEST: Pure Helpers
# =============================================================

class TestStreakHelpers:
    """Streaks treat points > 0 as correct."""

    def test_mixed_series(self):
        assert best_streak([5, 3, 0, 8]) == 2
        assert current_streak([5, 3, 0, 8]) == 1

    def test_ends_on_miss(self):
        assert current_streak([5, 5, 0]) == 0
        assert best_streak([5, 5, 0]) == 2

    def test_empty(self):
        assert current_streak([]) == 0
        assert best_streak([]) == 0

    def test_accuracy_of(self):
        assert accuracy_of(0, 0) == 0.0
        assert accuracy_of(1, 3) == 33.33
        assert accuracy_of(3, 3) == 100.0


class TestCursorHelpers:
    """Cursor encoding and validation."""

    def test_round_trip(self, clock):
        created_at, tx_id = decode_cursor(encode_cursor(clock.now(), 42))
        assert created_at == clock.now()
        assert tx_id == 42

    def test_bare_timestamp(self, clock):
        created_at, tx_id = decode_cursor(to_iso8601(clock.now()))
        assert created_at == clock.now()
        assert tx_id is None

    @pytest.mark.parametrize("cursor", ["yesterday", "2025-03-01T12:00:00|abc", "|17"])
    def test_invalid(self, cursor):
        with pytest.raises(InvalidCursorError):
            decode_cursor(cursor)


# =============================================================
# TEST: Summary
# =============================================================

class TestSummary:
    """summary() totals, windows, accuracy and streaks."""

    def test_empty_user(self, session_factory):
        summary = AggregateReader(session_factory).summary("nobody")
        assert summary.total_points == 0
        assert summary.points_this_week == 0
        assert summary.total_predictions == 0
        assert summary.accuracy_percentage == 0.0
        assert summary.current_streak == 0
        assert summary.best_streak == 0

    def test_windows(self, session_factory, seed, clock):
        now = clock.now()
        seed.ledger("alice", 10, created_at=now - timedelta(days=1))
        seed.ledger("alice", 5, created_at=now - timedelta(days=7))
        seed.ledger("alice", 20, created_at=now - timedelta(days=10))
        seed.ledger("alice", 40, created_at=now - timedelta(days=40))
        seed.ledger("alice", -3, created_at=now - timedelta(hours=2), reason=TransactionReason.PENALTY)
        seed.ledger("bob", 99)

        summary = AggregateReader(session_factory).summary("alice")

        assert summary.total_points == 72
        # the 7-day boundary is inclusive
        assert summary.points_this_week == 12
        assert summary.points_this_month == 32

    def test_explicit_now(self, session_factory, seed, clock):
        seed.ledger("alice", 10, created_at=clock.now() - timedelta(days=1))
        later = clock.now() + timedelta(days=30)
        summary = AggregateReader(session_factory).summary("alice", now=later)
        assert summary.total_points == 10
        assert summary.points_this_week == 0

    def test_streaks_follow_event_start_order(self, session_factory, seed, clock):
        """Insertion order differs from start order on purpose."""
        base = clock.now() - timedelta(days=10)
        late = seed.completed_event(start_time=base + timedelta(days=3))
        first = seed.completed_event(start_time=base)
        third = seed.completed_event(start_time=base + timedelta(days=2))
        second = seed.completed_event(start_time=base + timedelta(days=1))

        seed.prediction(late, user_id="alice", settled_points=8)
        seed.prediction(third, user_id="alice", settled_points=0)
        seed.prediction(first, user_id="alice", settled_points=5)
        seed.prediction(second, user_id="alice", settled_points=3)
        seed.prediction(seed.event(), user_id="alice")

        summary = AggregateReader(session_factory).summary("alice")

        assert summary.best_streak == 2
        assert summary.current_streak == 1
        assert summary.total_predictions == 5
        assert summary.correct_predictions == 3
        assert summary.accuracy_percentage == 60.0

    def test_reflects_settlement(self, session_factory, seed):
        event_id = seed.completed_event(101, 98)
        seed.prediction(event_id, user_id="alice", winner="HOME")
        SettlementEngine(session_factory).settle_event(event_id)

        summary = AggregateReader(session_factory).summary("alice")

        assert summary.total_points == 10
        assert summary.points_this_week == 10
        assert summary.correct_predictions == 1
        assert summary.current_streak == 1


# =============================================================
# TEST: History
# =============================================================

class TestHistory:
    """history() keyset pagination."""

    def test_newest_first_with_cursor(self, session_factory, seed, clock):
        now = clock.now()
        ids = [seed.ledger("alice", i + 1, created_at=now - timedelta(minutes=10 - i)) for i in range(5)]
        reader = AggregateReader(session_factory)

        page = reader.history("alice", limit=2)
        assert [t.id for t in page.transactions] == [ids[4], ids[3]]
        assert page.has_more is True
        assert page.next_cursor is not None

        page2 = reader.history("alice", cursor=page.next_cursor, limit=2)
        assert [t.id for t in page2.transactions] == [ids[2], ids[1]]

        page3 = reader.history("alice", cursor=page2.next_cursor, limit=2)
        assert [t.id for t in page3.transactions] == [ids[0]]
        assert page3.has_more is False
        assert page3.next_cursor is None

    def test_stable_under_new_inserts(self, session_factory, seed, clock):
        """A newer entry between page reads neither duplicates nor skips rows."""
        now = clock.now()
        for i in range(4):
            seed.ledger("alice", 1, created_at=now - timedelta(minutes=i + 1))
        reader = AggregateReader(session_factory)

        page = reader.history("alice", limit=2)
        seed.ledger("alice", 50, created_at=now)
        page2 = reader.history("alice", cursor=page.next_cursor, limit=2)

        seen = [t.id for t in page.transactions + page2.transactions]
        assert len(seen) == len(set(seen)) == 4
        assert all(t.points == 1 for t in page2.transactions)
        assert page2.has_more is False

    def test_equal_timestamps_break_ties_by_id(self, session_factory, seed, clock):
        stamp = clock.now() - timedelta(minutes=5)
        ids = [seed.ledger("alice", 1, created_at=stamp) for _ in range(3)]
        reader = AggregateReader(session_factory)

        page = reader.history("alice", limit=2)
        page2 = reader.history("alice", cursor=page.next_cursor, limit=2)

        assert [t.id for t in page.transactions] == [ids[2], ids[1]]
        assert [t.id for t in page2.transactions] == [ids[0]]

    def test_bare_timestamp_cursor(self, session_factory, seed, clock):
        now = clock.now()
        seed.ledger("alice", 1, created_at=now - timedelta(hours=1))
        older = seed.ledger("alice", 2, created_at=now - timedelta(hours=3))

        cursor = to_iso8601(now - timedelta(hours=1))
        page = AggregateReader(session_factory).history("alice", cursor=cursor)

        assert [t.id for t in page.transactions] == [older]

    def test_invalid_cursor(self, session_factory):
        with pytest.raises(InvalidCursorError):
            AggregateReader(session_factory).history("alice", cursor="not-a-cursor")

    def test_limit_clamped(self, session_factory, seed, clock):
        for i in range(4):
            seed.ledger("alice", 1, created_at=clock.now() - timedelta(minutes=i))
        config = AggregateConfig(history_default_limit=2, history_max_limit=3)
        reader = AggregateReader(session_factory, config=config)

        assert len(reader.history("alice").transactions) == 2
        assert len(reader.history("alice", limit=50).transactions) == 3
        assert len(reader.history("alice", limit=0).transactions) == 1

    def test_reason_and_event_filters(self, session_factory, seed):
        event_id = seed.completed_event()
        seed.ledger("alice", 5, reason=TransactionReason.BONUS)
        seed.ledger("alice", -2, reason=TransactionReason.PENALTY, event_id=event_id)
        reader = AggregateReader(session_factory)

        penalties = reader.history("alice", reason="penalty")
        assert [t.points for t in penalties.transactions] == [-2]
        assert penalties.transactions[0].reason is TransactionReason.PENALTY

        for_event = reader.history("alice", event_id=event_id)
        assert [t.event_id for t in for_event.transactions] == [event_id]

    def test_other_users_excluded(self, session_factory, seed):
        seed.ledger("alice", 5)
        seed.ledger("bob", 7)
        page = AggregateReader(session_factory).history("alice")
        assert [t.user_id for t in page.transactions] == ["alice"]


# =============================================================
# TEST: Event Summary
# =============================================================

class TestEventSummary:
    """event_summary() reads the prediction entry for one event."""

    def test_settled(self, session_factory, seed, clock):
        event_id = seed.completed_event(101, 98)
        seed.prediction(event_id, user_id="alice", winner="HOME")
        SettlementEngine(session_factory).settle_event(event_id)

        summary = AggregateReader(session_factory).event_summary(event_id, "alice")

        assert summary.points_earned == 10
        assert summary.breakdown["winner_points"] == 10
        assert summary.earned_at == clock.now()

    def test_unsettled_is_none(self, session_factory, seed):
        event_id = seed.completed_event()
        seed.prediction(event_id, user_id="alice")
        seed.ledger("alice", 5, event_id=event_id)
        assert AggregateReader(session_factory).event_summary(event_id, "alice") is None


# =============================================================
# TEST: Leaderboard
# =============================================================

class TestLeaderboard:
    """leaderboard() ordering and statistics."""

    def test_ordered_by_points_then_user(self, session_factory, seed):
        seed.ledger("carol", 30)
        seed.ledger("bob", 50)
        seed.ledger("alice", 30)
        seed.ledger("dave", -5, reason=TransactionReason.PENALTY)

        board = AggregateReader(session_factory).leaderboard()

        assert [(e.user_id, e.total_points) for e in board] == [
            ("bob", 50), ("alice", 30), ("carol", 30), ("dave", -5),
        ]

    def test_includes_prediction_stats(self, session_factory, seed):
        event_id = seed.completed_event(101, 98)
        seed.prediction(event_id, user_id="alice", winner="HOME")
        seed.prediction(event_id, user_id="bob", winner="AWAY")
        SettlementEngine(session_factory).settle_event(event_id)

        board = AggregateReader(session_factory).leaderboard()
        by_user = {e.user_id: e for e in board}

        assert by_user["alice"].correct_predictions == 1
        assert by_user["alice"].accuracy_percentage == 100.0
        assert by_user["bob"].total_points == 0
        assert by_user["bob"].current_streak == 0

    def test_restricted_user_set_and_limit(self, session_factory, seed):
        seed.ledger("alice", 30)
        seed.ledger("bob", 50)
        reader = AggregateReader(session_factory)

        board = reader.leaderboard(user_ids=["alice", "newcomer"])
        assert [e.user_id for e in board] == ["alice", "newcomer"]
        assert board[1].total_points == 0

        assert [e.user_id for e in reader.leaderboard(limit=1)] == ["bob"]
        assert reader.leaderboard(limit=0) == []
