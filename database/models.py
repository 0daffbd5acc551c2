"""
Database ORM Models - All Tables.

============================================================
SETTLEMENT DATABASE SCHEMA
============================================================

Defines the four tables the settlement subsystem reads and writes:

1. events              - Event store (status, final scores)
2. event_statistics    - Raw per-player statistics feed
3. predictions         - User forecasts + one-time settlement result
4. points_transactions - Append-only points ledger

Every point total is derived from points_transactions.
No table caches a running total.

============================================================
"""

import enum
import uuid

from sqlalchemy import (
    Column, Integer, BigInteger, String, Text, Float, Boolean,
    DateTime, JSON, ForeignKey, Index, UniqueConstraint, CheckConstraint,
    event,
)
from sqlalchemy.orm import relationship

from core.clock import now_utc
from core.exceptions import LedgerImmutableError

from .engine import Base


# =============================================================
# HELPER FUNCTIONS
# =============================================================

def generate_uuid():
    """Generate a new UUID."""
    return str(uuid.uuid4())


def utc_now():
    """Get current UTC timestamp from the process clock."""
    return now_utc()


# SQLite only autoincrements INTEGER PRIMARY KEY columns
LedgerId = BigInteger().with_variant(Integer, "sqlite")


# =============================================================
# ENUMS
# =============================================================

class EventStatus(str, enum.Enum):
    SCHEDULED = "SCHEDULED"
    LIVE = "LIVE"
    COMPLETED = "COMPLETED"


class PredictionType(str, enum.Enum):
    GAME_WINNER = "GAME_WINNER"
    FINAL_SCORE = "FINAL_SCORE"
    TEAM_THREES = "TEAM_THREES"


class Side(str, enum.Enum):
    HOME = "HOME"
    AWAY = "AWAY"


class TransactionReason(str, enum.Enum):
    PREDICTION = "prediction"
    BONUS = "bonus"
    LESSON = "lesson"
    PENALTY = "penalty"


# =============================================================
# 1. EVENTS TABLE
# =============================================================

class Event(Base):
    """
    A real-world contest predictions are scored against.

    Source: upstream schedule/score feed, operator completion
    Lifecycle: SCHEDULED -> LIVE -> COMPLETED (terminal)
    """
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=generate_uuid)

    # Teams (abbreviations, e.g. "BOS")
    home_team = Column(String(10), nullable=False)
    away_team = Column(String(10), nullable=False)
    season = Column(String(20), nullable=True)

    # Schedule / status
    start_time = Column(DateTime, nullable=False, index=True)
    status = Column(String(20), nullable=False, default=EventStatus.SCHEDULED.value, index=True)

    # Final result (null until completed)
    home_score = Column(Integer, nullable=True)
    away_score = Column(Integer, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)
    completed_at = Column(DateTime, nullable=True)

    # Relationships
    statistics = relationship("EventStatistic", back_populates="event", cascade="all, delete-orphan")
    predictions = relationship("Prediction", back_populates="event")

    __table_args__ = (
        Index("idx_events_status_start", "status", "start_time"),
    )

    @property
    def is_completed(self) -> bool:
        return (
            self.status == EventStatus.COMPLETED.value
            and self.home_score is not None
            and self.away_score is not None
        )

    def __repr__(self) -> str:
        return (
            f"Event(id={self.id}, {self.away_team}@{self.home_team}, "
            f"status={self.status}, score={self.home_score}-{self.away_score})"
        )


# =============================================================
# 2. EVENT STATISTICS TABLE
# =============================================================

class EventStatistic(Base):
    """
    Raw per-player statistic record from the stats feed.

    Source: external statistics provider
    Read by: OutcomeAggregator (three-point makes per team)
    """
    __tablename__ = "event_statistics"

    id = Column(LedgerId, primary_key=True, autoincrement=True)
    event_id = Column(String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)

    player_name = Column(String(100), nullable=True)
    team_abbreviation = Column(String(10), nullable=False)
    stat_type = Column(String(30), nullable=False)
    stat_value = Column(Float, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=utc_now)

    event = relationship("Event", back_populates="statistics")

    __table_args__ = (
        Index("idx_event_statistics_event_type", "event_id", "stat_type"),
    )


# =============================================================
# 3. PREDICTIONS TABLE
# =============================================================

class Prediction(Base):
    """
    A user's forecast for one event.

    Shape by prediction_type:
    - GAME_WINNER: predicted_winner
    - FINAL_SCORE: predicted_winner + predicted_home_score + predicted_away_score
    - TEAM_THREES: predicted_home_threes + predicted_away_threes (0..99)

    Settlement fields (points_earned, accuracy_score, actual_outcome,
    settled_at) are null until settled, then written together once.
    """
    __tablename__ = "predictions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    event_id = Column(String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)

    prediction_type = Column(String(20), nullable=False)

    # Shape columns
    predicted_winner = Column(String(10), nullable=True)
    predicted_home_score = Column(Integer, nullable=True)
    predicted_away_score = Column(Integer, nullable=True)
    predicted_home_threes = Column(Integer, nullable=True)
    predicted_away_threes = Column(Integer, nullable=True)

    submitted_at = Column(DateTime, nullable=False, default=utc_now)
    is_locked = Column(Boolean, nullable=False, default=False)

    # Settlement result
    points_earned = Column(Integer, nullable=True)
    accuracy_score = Column(Float, nullable=True)
    actual_outcome = Column(JSON, nullable=True)
    settled_at = Column(DateTime, nullable=True)

    event = relationship("Event", back_populates="predictions")

    __table_args__ = (
        UniqueConstraint("user_id", "event_id", name="uq_predictions_user_event"),
        Index("idx_predictions_event_unsettled", "event_id", "points_earned"),
        CheckConstraint(
            "(points_earned IS NULL) = (accuracy_score IS NULL)",
            name="ck_predictions_settled_together",
        ),
    )

    @property
    def is_settled(self) -> bool:
        return self.points_earned is not None

    def __repr__(self) -> str:
        return (
            f"Prediction(id={self.id}, user={self.user_id}, event={self.event_id}, "
            f"type={self.prediction_type}, points={self.points_earned})"
        )


# =============================================================
# 4. POINTS TRANSACTIONS TABLE (LEDGER)
# =============================================================

class PointsTransaction(Base):
    """
    Immutable, signed point-amount record.

    Source: SettlementEngine (reason=prediction), LedgerService (admin)
    Immutable once created: update and delete are refused, and the
    events and predictions it references cannot be deleted under it.
    """
    __tablename__ = "points_transactions"

    id = Column(LedgerId, primary_key=True, autoincrement=True)
    user_id = Column(String(36), nullable=False)
    event_id = Column(String(36), ForeignKey("events.id", ondelete="RESTRICT"), nullable=True, index=True)
    prediction_id = Column(
        String(36),
        ForeignKey("predictions.id", ondelete="RESTRICT"),
        nullable=True,
        unique=True,
    )

    points = Column(Integer, nullable=False)
    reason = Column(String(20), nullable=False)
    breakdown = Column(JSON, nullable=True)
    description = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (
        Index("idx_points_transactions_user_created", "user_id", "created_at", "id"),
        Index("idx_points_transactions_user_reason", "user_id", "reason"),
    )

    def __repr__(self) -> str:
        return (
            f"PointsTransaction(id={self.id}, user={self.user_id}, "
            f"points={self.points}, reason={self.reason})"
        )


# =============================================================
# LEDGER IMMUTABILITY
# =============================================================

@event.listens_for(PointsTransaction, "before_update")
def _refuse_ledger_update(mapper, connection, target):
    raise LedgerImmutableError(target.id, "update")


@event.listens_for(PointsTransaction, "before_delete")
def _refuse_ledger_delete(mapper, connection, target):
    raise LedgerImmutableError(target.id, "delete")


# =============================================================
# EXPORTS
# =============================================================

__all__ = [
    "EventStatus",
    "PredictionType",
    "Side",
    "TransactionReason",
    "Event",
    "EventStatistic",
    "Prediction",
    "PointsTransaction",
    "generate_uuid",
    "utc_now",
]
