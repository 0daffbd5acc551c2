"""
Settlement - Type Definitions.

============================================================
PURPOSE
============================================================
Data contracts for the settlement subsystem.

This module defines the values that flow between the outcome
aggregator, the scoring function, the settlement engine, the
completion monitor and the aggregate reader. None of them are
ORM objects: repositories convert rows into these types.

============================================================
PREDICTION SHAPES
============================================================
A prediction is exactly one of three shapes:

- GameWinnerPrediction:  predicted winning side
- FinalScorePrediction:  predicted side + home/away scores
- TeamThreesPrediction:  home/away made three-pointers (0..99)

Each scoring path receives only the fields its shape has.

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Union

from core.exceptions import PredictionShapeError
from database.models import EventStatus, PredictionType, Side, TransactionReason


MAX_THREES = 99


# ============================================================
# PREDICTION SHAPES (TAGGED UNION)
# ============================================================


@dataclass(frozen=True)
class GameWinnerPrediction:
    """Forecast of the winning side only."""

    prediction_id: str
    user_id: str
    event_id: str
    winner: Side

    prediction_type = PredictionType.GAME_WINNER


@dataclass(frozen=True)
class FinalScorePrediction:
    """Forecast of the winning side and both final scores."""

    prediction_id: str
    user_id: str
    event_id: str
    winner: Side
    home_score: int
    away_score: int

    prediction_type = PredictionType.FINAL_SCORE


@dataclass(frozen=True)
class TeamThreesPrediction:
    """Forecast of made three-pointers for each team."""

    prediction_id: str
    user_id: str
    event_id: str
    home_threes: int
    away_threes: int

    prediction_type = PredictionType.TEAM_THREES


PredictionView = Union[GameWinnerPrediction, FinalScorePrediction, TeamThreesPrediction]


def _parse_side(prediction_id: str, value: Optional[str]) -> Side:
    if value is None:
        raise PredictionShapeError(prediction_id, "predicted winner is missing")
    try:
        return Side(str(value).upper())
    except ValueError:
        raise PredictionShapeError(prediction_id, f"unknown side {value!r}")


def _require_count(prediction_id: str, name: str, value: Optional[int], upper: Optional[int] = None) -> int:
    if value is None:
        raise PredictionShapeError(prediction_id, f"{name} is missing")
    if value < 0 or (upper is not None and value > upper):
        bound = f"0..{upper}" if upper is not None else ">= 0"
        raise PredictionShapeError(prediction_id, f"{name}={value} outside {bound}")
    return int(value)


def to_prediction_view(record: Any) -> PredictionView:
    """
    Convert a stored prediction row into its tagged shape.

    Args:
        record: Object exposing the predictions table columns

    Returns:
        GameWinnerPrediction, FinalScorePrediction or TeamThreesPrediction

    Raises:
        PredictionShapeError: if the columns do not form the declared shape
    """
    pid = record.id
    try:
        kind = PredictionType(record.prediction_type)
    except ValueError:
        raise PredictionShapeError(pid, f"unknown prediction type {record.prediction_type!r}")

    common = {"prediction_id": pid, "user_id": record.user_id, "event_id": record.event_id}

    if kind is PredictionType.GAME_WINNER:
        return GameWinnerPrediction(winner=_parse_side(pid, record.predicted_winner), **common)

    if kind is PredictionType.FINAL_SCORE:
        return FinalScorePrediction(
            winner=_parse_side(pid, record.predicted_winner),
            home_score=_require_count(pid, "predicted_home_score", record.predicted_home_score),
            away_score=_require_count(pid, "predicted_away_score", record.predicted_away_score),
            **common,
        )

    return TeamThreesPrediction(
        home_threes=_require_count(pid, "predicted_home_threes", record.predicted_home_threes, MAX_THREES),
        away_threes=_require_count(pid, "predicted_away_threes", record.predicted_away_threes, MAX_THREES),
        **common,
    )


# ============================================================
# EVENT OUTCOME
# ============================================================


@dataclass(frozen=True)
class EventOutcome:
    """
    Normalized result of a completed event.

    Computed on demand from the event row and its raw statistics;
    never stored except as a snapshot on settled predictions.
    """

    event_id: str
    home_team: str
    away_team: str
    home_score: int
    away_score: int
    winner: Side
    home_threes: int = 0
    away_threes: int = 0

    @property
    def winner_team(self) -> str:
        return self.home_team if self.winner is Side.HOME else self.away_team

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "status": EventStatus.COMPLETED.value,
            "home_team": self.home_team,
            "away_team": self.away_team,
            "home_score": self.home_score,
            "away_score": self.away_score,
            "winner": self.winner.value,
            "winner_team": self.winner_team,
            "home_threes": self.home_threes,
            "away_threes": self.away_threes,
        }


# ============================================================
# SCORING OUTPUT (BREAKDOWN)
# ============================================================


@dataclass(frozen=True)
class StatAccuracy:
    """Predicted vs actual value for one scored statistic."""

    label: str
    predicted: int
    actual: int
    points: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "predicted": self.predicted,
            "actual": self.actual,
            "points": self.points,
        }


@dataclass(frozen=True)
class TeamThreesDetail:
    home_predicted: int
    home_actual: int
    away_predicted: int
    away_actual: int
    total_difference: int
    points: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "home_predicted": self.home_predicted,
            "home_actual": self.home_actual,
            "away_predicted": self.away_predicted,
            "away_actual": self.away_actual,
            "total_difference": self.total_difference,
            "points": self.points,
        }


@dataclass(frozen=True)
class BreakdownDetails:
    winner_correct: bool = False
    score_differential: Optional[int] = None
    per_stat_accuracy: List[StatAccuracy] = field(default_factory=list)
    team_threes: Optional[TeamThreesDetail] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "winner_correct": self.winner_correct,
            "score_differential": self.score_differential,
            "per_stat_accuracy": [s.to_dict() for s in self.per_stat_accuracy],
            "team_threes": self.team_threes.to_dict() if self.team_threes else None,
        }


@dataclass(frozen=True)
class Breakdown:
    """
    Structured explanation of how a point total was computed.

    Attached to the ledger transaction as its payload.
    """

    winner_points: int = 0
    score_points: int = 0
    player_stat_points: int = 0
    team_threes_points: int = 0
    bonus_points: int = 0
    total: int = 0
    details: BreakdownDetails = field(default_factory=BreakdownDetails)

    @property
    def component_sum(self) -> int:
        return (
            self.winner_points
            + self.score_points
            + self.player_stat_points
            + self.team_threes_points
            + self.bonus_points
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "winner_points": self.winner_points,
            "score_points": self.score_points,
            "player_stat_points": self.player_stat_points,
            "team_threes_points": self.team_threes_points,
            "bonus_points": self.bonus_points,
            "total": self.total,
            "details": self.details.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Breakdown":
        details = data.get("details") or {}
        threes = details.get("team_threes")
        return cls(
            winner_points=data.get("winner_points", 0),
            score_points=data.get("score_points", 0),
            player_stat_points=data.get("player_stat_points", 0),
            team_threes_points=data.get("team_threes_points", 0),
            bonus_points=data.get("bonus_points", 0),
            total=data.get("total", 0),
            details=BreakdownDetails(
                winner_correct=details.get("winner_correct", False),
                score_differential=details.get("score_differential"),
                per_stat_accuracy=[StatAccuracy(**s) for s in details.get("per_stat_accuracy") or []],
                team_threes=TeamThreesDetail(**threes) if threes else None,
            ),
        )


# ============================================================
# SETTLEMENT RESULTS
# ============================================================


@dataclass
class EventSettlementResult:
    """Outcome of settling every unsettled prediction of one event."""

    event_id: str
    settled: Dict[str, Breakdown] = field(default_factory=dict)
    failed: Dict[str, str] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)

    @property
    def breakdowns(self) -> List[Breakdown]:
        return list(self.settled.values())

    @property
    def settled_count(self) -> int:
        return len(self.settled)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "settled": {pid: b.to_dict() for pid, b in self.settled.items()},
            "failed": dict(self.failed),
            "skipped": list(self.skipped),
        }


@dataclass
class SweepReport:
    """Summary of one process_completed_events() run."""

    started_at: datetime
    finished_at: Optional[datetime] = None
    events_found: int = 0
    events_processed: int = 0
    events_failed: List[str] = field(default_factory=list)
    events_unresolvable: List[str] = field(default_factory=list)
    predictions_settled: int = 0
    predictions_failed: int = 0
    truncated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "events_found": self.events_found,
            "events_processed": self.events_processed,
            "events_failed": list(self.events_failed),
            "events_unresolvable": list(self.events_unresolvable),
            "predictions_settled": self.predictions_settled,
            "predictions_failed": self.predictions_failed,
            "truncated": self.truncated,
        }


@dataclass(frozen=True)
class StaleEvent:
    """An in-progress event long past its start: needs operator attention."""

    event_id: str
    home_team: str
    away_team: str
    status: EventStatus
    start_time: datetime
    overdue_by: timedelta
    prediction_count: int = 0


@dataclass(frozen=True)
class SimulatedCompletion:
    event_id: str
    home_score: int
    away_score: int
    breakdowns: List[Breakdown] = field(default_factory=list)


# ============================================================
# AGGREGATE READ MODELS
# ============================================================


@dataclass(frozen=True)
class PointsSummary:
    """Derived totals for one user, recomputed from the ledger on every read."""

    user_id: str
    total_points: int = 0
    points_this_week: int = 0
    points_this_month: int = 0
    total_predictions: int = 0
    correct_predictions: int = 0
    accuracy_percentage: float = 0.0
    current_streak: int = 0
    best_streak: int = 0


@dataclass(frozen=True)
class LedgerEntry:
    """Read model of one ledger transaction."""

    id: int
    user_id: str
    event_id: Optional[str]
    prediction_id: Optional[str]
    points: int
    reason: TransactionReason
    breakdown: Optional[Dict[str, Any]]
    description: Optional[str]
    created_at: datetime


@dataclass(frozen=True)
class HistoryPage:
    transactions: List[LedgerEntry]
    next_cursor: Optional[str]
    has_more: bool


@dataclass(frozen=True)
class EventPointsSummary:
    event_id: str
    user_id: str
    points_earned: int
    breakdown: Optional[Dict[str, Any]]
    earned_at: datetime


@dataclass(frozen=True)
class LeaderboardEntry:
    user_id: str
    total_points: int
    total_predictions: int
    correct_predictions: int
    accuracy_percentage: float
    current_streak: int
    best_streak: int
