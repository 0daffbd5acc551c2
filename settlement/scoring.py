"""
Settlement - Scoring Function.

============================================================
CONTRACT
============================================================
A scoring function maps (prediction, outcome) to a Breakdown:

    score(prediction, outcome) -> Breakdown

- total == sum of the component points
- total >= 0
- total <= ceiling of the prediction type

Ceilings: GAME_WINNER 10, FINAL_SCORE 50, TEAM_THREES 25.
Accuracy is reported against a fixed cap of 200.

============================================================
DEFAULT (LinearScoring)
============================================================
GAME_WINNER:  10 if the predicted side won, else 0
FINAL_SCORE:  10 for the correct side
              + max(0, 40 - (|dh| + |da|)), capped at 50
TEAM_THREES:  max(0, 25 - (|dh| + |da|))

============================================================
"""

from typing import Optional, Protocol

from core.exceptions import ScoringError

from .config import ScoringConfig
from .types import (
    Breakdown,
    BreakdownDetails,
    EventOutcome,
    FinalScorePrediction,
    GameWinnerPrediction,
    PredictionView,
    TeamThreesDetail,
    TeamThreesPrediction,
)


class ScoringFunction(Protocol):
    """Pluggable scoring contract consumed by the settlement engine."""

    def score(self, prediction: PredictionView, outcome: EventOutcome) -> Breakdown:
        ...


def accuracy_percentage(total: int, cap: int = 200) -> float:
    """Accuracy of a point total against the cap, clamped to 0..100."""
    if cap <= 0:
        return 0.0
    value = round(total / cap * 100, 2)
    return max(0.0, min(100.0, value))


def validate_breakdown(breakdown: Breakdown, prediction_id: str) -> Breakdown:
    """
    Reject breakdowns that break the scoring contract.

    Raises:
        ScoringError: total negative or not the sum of its components
    """
    if not isinstance(breakdown, Breakdown):
        raise ScoringError(
            f"Scoring returned {type(breakdown).__name__} for prediction {prediction_id}",
            context={"prediction_id": prediction_id},
        )
    if breakdown.total < 0:
        raise ScoringError(
            f"Negative total {breakdown.total} for prediction {prediction_id}",
            context={"prediction_id": prediction_id, "total": breakdown.total},
        )
    if breakdown.total != breakdown.component_sum:
        raise ScoringError(
            f"Breakdown total {breakdown.total} != component sum "
            f"{breakdown.component_sum} for prediction {prediction_id}",
            context={"prediction_id": prediction_id},
        )
    return breakdown


class LinearScoring:
    """Default scoring function with linear closeness decay."""

    def __init__(self, config: Optional[ScoringConfig] = None):
        self._config = config or ScoringConfig()

    def score(self, prediction: PredictionView, outcome: EventOutcome) -> Breakdown:
        if isinstance(prediction, GameWinnerPrediction):
            return self._score_winner(prediction, outcome)
        if isinstance(prediction, FinalScorePrediction):
            return self._score_final(prediction, outcome)
        if isinstance(prediction, TeamThreesPrediction):
            return self._score_threes(prediction, outcome)
        raise ScoringError(f"Unsupported prediction shape: {type(prediction).__name__}")

    def _score_winner(self, prediction: GameWinnerPrediction, outcome: EventOutcome) -> Breakdown:
        correct = prediction.winner is outcome.winner
        points = self._config.winner_points if correct else 0
        return Breakdown(
            winner_points=points,
            total=points,
            details=BreakdownDetails(winner_correct=correct),
        )

    def _score_final(self, prediction: FinalScorePrediction, outcome: EventOutcome) -> Breakdown:
        cfg = self._config
        correct = prediction.winner is outcome.winner
        winner_points = cfg.winner_points if correct else 0

        differential = (
            abs(prediction.home_score - outcome.home_score)
            + abs(prediction.away_score - outcome.away_score)
        )
        score_points = max(0, cfg.final_score_closeness_points - differential)

        # Ceiling comes off the closeness component
        overflow = max(0, winner_points + score_points - cfg.final_score_max_points)
        score_points -= overflow

        return Breakdown(
            winner_points=winner_points,
            score_points=score_points,
            total=winner_points + score_points,
            details=BreakdownDetails(winner_correct=correct, score_differential=differential),
        )

    def _score_threes(self, prediction: TeamThreesPrediction, outcome: EventOutcome) -> Breakdown:
        home_diff = abs(prediction.home_threes - outcome.home_threes)
        away_diff = abs(prediction.away_threes - outcome.away_threes)
        points = max(0, self._config.team_threes_max_points - (home_diff + away_diff))

        detail = TeamThreesDetail(
            home_predicted=prediction.home_threes,
            home_actual=outcome.home_threes,
            away_predicted=prediction.away_threes,
            away_actual=outcome.away_threes,
            total_difference=home_diff + away_diff,
            points=points,
        )
        return Breakdown(
            team_threes_points=points,
            total=points,
            details=BreakdownDetails(winner_correct=False, team_threes=detail),
        )
