"""
Tests for the default scoring function and prediction shapes.

Tests cover:
- GAME_WINNER / FINAL_SCORE / TEAM_THREES point rules and ceilings
- Accuracy percentage against the cap
- Breakdown contract validation
- Conversion of stored rows into tagged prediction shapes
"""

import pytest
from types import SimpleNamespace

from core.exceptions import PredictionShapeError, ScoringError
from database.models import Side
from settlement.scoring import LinearScoring, accuracy_percentage, validate_breakdown
from settlement.types import (
    Breakdown,
    EventOutcome,
    FinalScorePrediction,
    GameWinnerPrediction,
    TeamThreesPrediction,
    to_prediction_view,
)


OUTCOME = EventOutcome(
    event_id="evt-1",
    home_team="BOS",
    away_team="LAL",
    home_score=101,
    away_score=98,
    winner=Side.HOME,
    home_threes=14,
    away_threes=11,
)

IDS = {"prediction_id": "p-1", "user_id": "u-1", "event_id": "evt-1"}


@pytest.fixture
def scoring():
    return LinearScoring()


# =============================================================
# TEST: GAME_WINNER
# =============================================================

class TestGameWinner:
    """10 points for the correct side."""

    def test_correct_side(self, scoring):
        breakdown = scoring.score(GameWinnerPrediction(winner=Side.HOME, **IDS), OUTCOME)
        assert breakdown.total == 10
        assert breakdown.winner_points == 10
        assert breakdown.details.winner_correct is True

    def test_wrong_side(self, scoring):
        breakdown = scoring.score(GameWinnerPrediction(winner=Side.AWAY, **IDS), OUTCOME)
        assert breakdown.total == 0
        assert breakdown.details.winner_correct is False


# =============================================================
# TEST: FINAL_SCORE
# =============================================================

class TestFinalScore:
    """Correct side plus linear closeness, capped at 50."""

    def test_exact_score_hits_ceiling(self, scoring):
        prediction = FinalScorePrediction(winner=Side.HOME, home_score=101, away_score=98, **IDS)
        breakdown = scoring.score(prediction, OUTCOME)
        assert breakdown.total == 50
        assert breakdown.winner_points == 10
        assert breakdown.score_points == 40
        assert breakdown.details.score_differential == 0

    def test_close_score(self, scoring):
        prediction = FinalScorePrediction(winner=Side.HOME, home_score=100, away_score=95, **IDS)
        breakdown = scoring.score(prediction, OUTCOME)
        # |100-101| + |95-98| = 4
        assert breakdown.score_points == 36
        assert breakdown.total == 46
        assert breakdown.details.score_differential == 4

    def test_wrong_side_keeps_closeness(self, scoring):
        prediction = FinalScorePrediction(winner=Side.AWAY, home_score=99, away_score=100, **IDS)
        breakdown = scoring.score(prediction, OUTCOME)
        # |99-101| + |100-98| = 4
        assert breakdown.winner_points == 0
        assert breakdown.total == 36

    def test_far_off_floors_at_zero(self, scoring):
        prediction = FinalScorePrediction(winner=Side.HOME, home_score=150, away_score=60, **IDS)
        breakdown = scoring.score(prediction, OUTCOME)
        assert breakdown.score_points == 0
        assert breakdown.total == 10


# =============================================================
# TEST: TEAM_THREES
# =============================================================

class TestTeamThrees:
    """25 minus the absolute error sum, floored at zero."""

    def test_exact(self, scoring):
        prediction = TeamThreesPrediction(home_threes=14, away_threes=11, **IDS)
        breakdown = scoring.score(prediction, OUTCOME)
        assert breakdown.total == 25
        assert breakdown.team_threes_points == 25
        assert breakdown.details.team_threes.total_difference == 0

    def test_partial(self, scoring):
        prediction = TeamThreesPrediction(home_threes=10, away_threes=13, **IDS)
        breakdown = scoring.score(prediction, OUTCOME)
        assert breakdown.total == 19
        assert breakdown.details.team_threes.home_actual == 14
        assert breakdown.details.winner_correct is False

    def test_floor(self, scoring):
        prediction = TeamThreesPrediction(home_threes=40, away_threes=0, **IDS)
        assert scoring.score(prediction, OUTCOME).total == 0


# =============================================================
# TEST: Accuracy And Contract
# =============================================================

class TestAccuracy:
    """Accuracy is total / 200 * 100, clamped to 0..100."""

    def test_values(self):
        assert accuracy_percentage(10) == 5.0
        assert accuracy_percentage(50) == 25.0
        assert accuracy_percentage(33) == 16.5

    def test_clamped(self):
        assert accuracy_percentage(0) == 0.0
        assert accuracy_percentage(-20) == 0.0
        assert accuracy_percentage(450) == 100.0


class TestBreakdownContract:
    """Scoring output must be self-consistent."""

    def test_valid_breakdown_passes(self):
        breakdown = Breakdown(winner_points=10, score_points=5, total=15)
        assert validate_breakdown(breakdown, "p-1") is breakdown

    def test_total_mismatch_rejected(self):
        with pytest.raises(ScoringError):
            validate_breakdown(Breakdown(winner_points=10, total=12), "p-1")

    def test_negative_total_rejected(self):
        with pytest.raises(ScoringError):
            validate_breakdown(Breakdown(bonus_points=-5, total=-5), "p-1")

    def test_non_breakdown_rejected(self):
        with pytest.raises(ScoringError):
            validate_breakdown({"total": 10}, "p-1")

    def test_breakdown_dict_round_trip_keeps_details(self, scoring):
        prediction = TeamThreesPrediction(home_threes=10, away_threes=13, **IDS)
        breakdown = scoring.score(prediction, OUTCOME)
        assert Breakdown.from_dict(breakdown.to_dict()) == breakdown


# =============================================================
# TEST: Prediction Shapes
# =============================================================

def make_row(**overrides):
    row = dict(
        id="p-1",
        user_id="u-1",
        event_id="evt-1",
        prediction_type="GAME_WINNER",
        predicted_winner="HOME",
        predicted_home_score=None,
        predicted_away_score=None,
        predicted_home_threes=None,
        predicted_away_threes=None,
    )
    row.update(overrides)
    return SimpleNamespace(**row)


class TestPredictionShapes:
    """Stored rows convert to exactly one tagged shape."""

    def test_game_winner(self):
        view = to_prediction_view(make_row(predicted_winner="away"))
        assert isinstance(view, GameWinnerPrediction)
        assert view.winner is Side.AWAY

    def test_final_score(self):
        view = to_prediction_view(make_row(
            prediction_type="FINAL_SCORE", predicted_home_score=100, predicted_away_score=95,
        ))
        assert isinstance(view, FinalScorePrediction)
        assert (view.home_score, view.away_score) == (100, 95)

    def test_team_threes_ignores_winner(self):
        view = to_prediction_view(make_row(
            prediction_type="TEAM_THREES", predicted_winner=None,
            predicted_home_threes=12, predicted_away_threes=9,
        ))
        assert isinstance(view, TeamThreesPrediction)
        assert not hasattr(view, "winner")

    def test_missing_winner(self):
        with pytest.raises(PredictionShapeError):
            to_prediction_view(make_row(predicted_winner=None))

    def test_missing_final_score(self):
        with pytest.raises(PredictionShapeError):
            to_prediction_view(make_row(prediction_type="FINAL_SCORE", predicted_home_score=100))

    def test_threes_out_of_range(self):
        with pytest.raises(PredictionShapeError):
            to_prediction_view(make_row(
                prediction_type="TEAM_THREES", predicted_home_threes=100, predicted_away_threes=3,
            ))

    def test_unknown_type(self):
        with pytest.raises(PredictionShapeError):
            to_prediction_view(make_row(prediction_type="MVP"))
