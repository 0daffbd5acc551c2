"""
Settlement - Package.

============================================================
PURPOSE
============================================================
Turns completed sporting events into durable, idempotent point
awards for the users who predicted them, and serves aggregates
read back from the points ledger.

============================================================
WHAT IT GUARANTEES
============================================================
- A prediction is settled at most once
- Settlement is safe to re-run at any granularity
- Every total, window sum, accuracy and streak is derived
  from the ledger and predictions tables alone

============================================================
COMPONENTS
============================================================
1. OutcomeAggregator: normalized result of a completed event
2. LinearScoring:     default pluggable scoring function
3. SettlementEngine:  one transaction per prediction
4. LedgerService:     append-only ledger, admin adjustments
5. AggregateReader:   summary, history, event summary, leaderboard
6. CompletionMonitor: sweep, operator completion, stale listing

============================================================
USAGE
============================================================
    from database import configure_database, create_all_tables
    from settlement import CompletionMonitor, AggregateReader

    factory = configure_database("sqlite:///./settlement.db")
    create_all_tables()

    monitor = CompletionMonitor(session_factory=factory)
    breakdowns = monitor.complete_event(event_id, 101, 98)

    report = monitor.process_completed_events(max_events=100)
    print(f"Settled {report.predictions_settled} predictions")

    reader = AggregateReader(session_factory=factory)
    summary = reader.summary(user_id)
    page = reader.history(user_id, limit=20)

============================================================
"""

from .config import (
    SettlementConfig,
    ScoringConfig,
    OutcomeConfig,
    MonitorConfig,
    AggregateConfig,
    get_default_config,
)
from .types import (
    # Prediction shapes
    GameWinnerPrediction,
    FinalScorePrediction,
    TeamThreesPrediction,
    PredictionView,
    to_prediction_view,
    # Outcome / scoring
    EventOutcome,
    Breakdown,
    BreakdownDetails,
    StatAccuracy,
    TeamThreesDetail,
    # Results
    EventSettlementResult,
    SweepReport,
    StaleEvent,
    SimulatedCompletion,
    # Read models
    PointsSummary,
    LedgerEntry,
    HistoryPage,
    EventPointsSummary,
    LeaderboardEntry,
)
from .outcome import OutcomeAggregator, aggregate_outcome
from .scoring import ScoringFunction, LinearScoring, accuracy_percentage
from .engine import SettlementEngine
from .ledger import LedgerService
from .aggregates import AggregateReader
from .monitor import CompletionMonitor


__all__ = [
    # Configuration
    "SettlementConfig",
    "ScoringConfig",
    "OutcomeConfig",
    "MonitorConfig",
    "AggregateConfig",
    "get_default_config",
    # Prediction shapes
    "GameWinnerPrediction",
    "FinalScorePrediction",
    "TeamThreesPrediction",
    "PredictionView",
    "to_prediction_view",
    # Outcome / scoring
    "EventOutcome",
    "Breakdown",
    "BreakdownDetails",
    "StatAccuracy",
    "TeamThreesDetail",
    "OutcomeAggregator",
    "aggregate_outcome",
    "ScoringFunction",
    "LinearScoring",
    "accuracy_percentage",
    # Results
    "EventSettlementResult",
    "SweepReport",
    "StaleEvent",
    "SimulatedCompletion",
    # Read models
    "PointsSummary",
    "LedgerEntry",
    "HistoryPage",
    "EventPointsSummary",
    "LeaderboardEntry",
    # Services
    "SettlementEngine",
    "LedgerService",
    "AggregateReader",
    "CompletionMonitor",
]
