"""
Pydantic Schemas for the Points and Settlement Admin API.
"""

from dataclasses import asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# =============================================================
# ENUMS
# =============================================================

class AdjustmentReasonEnum(str, Enum):
    BONUS = "bonus"
    LESSON = "lesson"
    PENALTY = "penalty"


class TransactionReasonEnum(str, Enum):
    PREDICTION = "prediction"
    BONUS = "bonus"
    LESSON = "lesson"
    PENALTY = "penalty"


class EventStatusEnum(str, Enum):
    SCHEDULED = "SCHEDULED"
    LIVE = "LIVE"
    COMPLETED = "COMPLETED"


# =============================================================
# BREAKDOWN SCHEMAS
# =============================================================

class StatAccuracySchema(BaseModel):
    label: str
    predicted: int
    actual: int
    points: int


class TeamThreesDetailSchema(BaseModel):
    home_predicted: int
    home_actual: int
    away_predicted: int
    away_actual: int
    total_difference: int
    points: int


class BreakdownDetailsSchema(BaseModel):
    winner_correct: bool = False
    score_differential: Optional[int] = None
    per_stat_accuracy: List[StatAccuracySchema] = Field(default_factory=list)
    team_threes: Optional[TeamThreesDetailSchema] = None


class BreakdownSchema(BaseModel):
    """How a point total was computed."""
    winner_points: int = 0
    score_points: int = 0
    player_stat_points: int = 0
    team_threes_points: int = 0
    bonus_points: int = 0
    total: int = 0
    details: BreakdownDetailsSchema = Field(default_factory=BreakdownDetailsSchema)

    @classmethod
    def from_breakdown(cls, breakdown) -> "BreakdownSchema":
        return cls.model_validate(breakdown.to_dict())


# =============================================================
# POINTS (USER) RESPONSES
# =============================================================

class PointsSummaryResponse(BaseModel):
    user_id: str
    total_points: int
    points_this_week: int
    points_this_month: int
    total_predictions: int
    correct_predictions: int
    accuracy_percentage: float
    current_streak: int
    best_streak: int


class LedgerEntryResponse(BaseModel):
    id: int
    user_id: str
    event_id: Optional[str] = None
    prediction_id: Optional[str] = None
    points: int
    reason: TransactionReasonEnum
    breakdown: Optional[Dict[str, Any]] = None
    description: Optional[str] = None
    created_at: datetime


class HistoryResponse(BaseModel):
    transactions: List[LedgerEntryResponse]
    has_more: bool
    next_cursor: Optional[str] = None


class EventPointsResponse(BaseModel):
    event_id: str
    user_id: str
    points_earned: int
    breakdown: Optional[Dict[str, Any]] = None
    earned_at: datetime


class LeaderboardEntryResponse(BaseModel):
    rank: int
    user_id: str
    total_points: int
    total_predictions: int
    correct_predictions: int
    accuracy_percentage: float
    current_streak: int
    best_streak: int


class LeaderboardResponse(BaseModel):
    entries: List[LeaderboardEntryResponse]


# =============================================================
# ADMIN REQUESTS
# =============================================================

class AdjustPointsRequest(BaseModel):
    """Manual ledger adjustment."""
    user_id: str = Field(..., min_length=1)
    points: int = Field(..., description="Signed amount, non-zero")
    reason: Optional[AdjustmentReasonEnum] = Field(
        None, description="Defaults to bonus (>0) or penalty (<0)"
    )
    description: Optional[str] = Field(None, max_length=500)
    event_id: Optional[str] = None


class CompleteEventRequest(BaseModel):
    home_score: int
    away_score: int


class UpdateEventStatusRequest(BaseModel):
    status: EventStatusEnum
    home_score: Optional[int] = None
    away_score: Optional[int] = None


# =============================================================
# ADMIN RESPONSES
# =============================================================

class SettlePredictionResponse(BaseModel):
    prediction_id: str
    settled: bool
    breakdown: Optional[BreakdownSchema] = None


class EventSettlementResponse(BaseModel):
    event_id: str
    settled_count: int
    failed_count: int
    skipped_count: int
    breakdowns: List[BreakdownSchema]
    failed: Dict[str, str] = Field(default_factory=dict)


class SweepReportResponse(BaseModel):
    started_at: datetime
    finished_at: Optional[datetime] = None
    events_found: int
    events_processed: int
    events_failed: List[str]
    events_unresolvable: List[str] = Field(default_factory=list)
    predictions_settled: int
    predictions_failed: int
    truncated: bool


class CompleteEventResponse(BaseModel):
    event_id: str
    home_score: int
    away_score: int
    settled_count: int
    breakdowns: List[BreakdownSchema]


class EventStatusResponse(BaseModel):
    event_id: str
    status: EventStatusEnum
    settled_count: int
    breakdowns: List[BreakdownSchema]


class StaleEventResponse(BaseModel):
    event_id: str
    home_team: str
    away_team: str
    status: EventStatusEnum
    start_time: datetime
    overdue_minutes: int
    prediction_count: int

    @classmethod
    def from_stale(cls, stale) -> "StaleEventResponse":
        data = asdict(stale)
        overdue = data.pop("overdue_by")
        data["overdue_minutes"] = int(overdue.total_seconds() // 60)
        data["status"] = stale.status.value
        return cls.model_validate(data)


class NeedsAttentionResponse(BaseModel):
    grace_hours: float
    count: int
    events: List[StaleEventResponse]


class LockPredictionsResponse(BaseModel):
    locked: int
