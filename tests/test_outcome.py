"""
Tests for the Outcome Aggregator.

Tests cover:
- Winner resolution and tie rejection
- Completion preconditions
- Three-point aggregation per team (case-insensitive)
- Loading from the database
"""

import pytest
from types import SimpleNamespace

from core.exceptions import InvalidStateError, NotFoundError, UnresolvableOutcomeError
from database.models import Side
from settlement.config import OutcomeConfig
from settlement.outcome import OutcomeAggregator, aggregate_outcome, sum_team_threes


def make_event(home_score=101, away_score=98, status="COMPLETED", home="BOS", away="LAL"):
    return SimpleNamespace(
        id="evt-1",
        home_team=home,
        away_team=away,
        status=status,
        home_score=home_score,
        away_score=away_score,
    )


def make_stat(team, value, stat_type="3pm"):
    return SimpleNamespace(team_abbreviation=team, stat_type=stat_type, stat_value=value)


# =============================================================
# TEST: Winner Resolution
# =============================================================

class TestWinner:
    """Winner is the side with the strictly greater score."""

    def test_home_win(self):
        outcome = aggregate_outcome(make_event(101, 98), [])
        assert outcome.winner is Side.HOME
        assert outcome.winner_team == "BOS"

    def test_away_win(self):
        outcome = aggregate_outcome(make_event(90, 112), [])
        assert outcome.winner is Side.AWAY
        assert outcome.winner_team == "LAL"

    def test_tie_is_unresolvable(self):
        """Equal scores never resolve to a side."""
        with pytest.raises(UnresolvableOutcomeError) as exc_info:
            aggregate_outcome(make_event(100, 100), [])
        assert exc_info.value.requires_operator

    def test_scores_carried_through(self):
        outcome = aggregate_outcome(make_event(101, 98), [])
        assert outcome.home_score == 101
        assert outcome.away_score == 98
        assert outcome.to_dict()["winner"] == "HOME"


# =============================================================
# TEST: Preconditions
# =============================================================

class TestPreconditions:
    """Only completed events with both scores aggregate."""

    def test_scheduled_event_rejected(self):
        with pytest.raises(InvalidStateError):
            aggregate_outcome(make_event(None, None, status="SCHEDULED"), [])

    def test_live_event_with_scores_rejected(self):
        with pytest.raises(InvalidStateError):
            aggregate_outcome(make_event(50, 40, status="LIVE"), [])

    def test_completed_without_scores_rejected(self):
        with pytest.raises(InvalidStateError):
            aggregate_outcome(make_event(101, None), [])


# =============================================================
# TEST: Three-Point Aggregation
# =============================================================

class TestTeamThrees:
    """Made threes are summed per team and mapped onto home/away."""

    def test_sums_per_team(self):
        stats = [
            make_stat("BOS", 4),
            make_stat("BOS", 3),
            make_stat("LAL", 5),
        ]
        outcome = aggregate_outcome(make_event(), stats)
        assert outcome.home_threes == 7
        assert outcome.away_threes == 5

    def test_marker_match_is_case_insensitive(self):
        stats = [make_stat("BOS", 2, "3PM"), make_stat("LAL", 6, "3Pm")]
        outcome = aggregate_outcome(make_event(), stats)
        assert outcome.home_threes == 2
        assert outcome.away_threes == 6

    def test_team_match_is_case_insensitive(self):
        stats = [make_stat("bos", 3), make_stat("Lal", 1)]
        outcome = aggregate_outcome(make_event(), stats)
        assert outcome.home_threes == 3
        assert outcome.away_threes == 1

    def test_other_stat_types_ignored(self):
        stats = [make_stat("BOS", 30, "pts"), make_stat("BOS", 2), make_stat("LAL", 9, "reb")]
        outcome = aggregate_outcome(make_event(), stats)
        assert outcome.home_threes == 2
        assert outcome.away_threes == 0

    def test_missing_team_counts_zero(self):
        outcome = aggregate_outcome(make_event(), [])
        assert outcome.home_threes == 0
        assert outcome.away_threes == 0

    def test_configurable_marker(self):
        stats = [make_stat("BOS", 4, "fg3m"), make_stat("BOS", 9, "3pm")]
        outcome = aggregate_outcome(make_event(), stats, OutcomeConfig(three_point_stat_type="FG3M"))
        assert outcome.home_threes == 4

    def test_sum_team_threes_keys_upper_cased(self):
        totals = sum_team_threes([make_stat("bos", 1), make_stat("BOS", 2)])
        assert totals == {"BOS": 3}


# =============================================================
# TEST: Database Loading
# =============================================================

class TestOutcomeAggregator:
    """OutcomeAggregator reads the event and its statistics."""

    def test_build_from_database(self, session_factory, seed):
        event_id = seed.completed_event(101, 98)
        seed.stat(event_id, "BOS", 12)
        seed.stat(event_id, "lal", 9, stat_type="3PM")

        outcome = OutcomeAggregator(session_factory).build(event_id)

        assert outcome.event_id == event_id
        assert outcome.winner is Side.HOME
        assert (outcome.home_threes, outcome.away_threes) == (12, 9)

    def test_unknown_event(self, session_factory):
        with pytest.raises(NotFoundError):
            OutcomeAggregator(session_factory).build("missing")

    def test_incomplete_event(self, session_factory, seed):
        event_id = seed.event()
        with pytest.raises(InvalidStateError):
            OutcomeAggregator(session_factory).build(event_id)
