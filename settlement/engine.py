"""
Settlement - Engine.

============================================================
PURPOSE
============================================================
Settles predictions against completed events and posts the
resulting points to the ledger.

============================================================
IDEMPOTENCY
============================================================
The unsettled predicate (points_earned IS NULL) is the only
gate. One transaction per prediction:

    UPDATE predictions SET points_earned = ..., ...
     WHERE id = :id AND points_earned IS NULL
    -- rowcount 0: another settler won, nothing else is written
    INSERT INTO points_transactions (...)

Both writes commit or neither does. Re-running settlement on
any prediction, event or sweep never double-posts.

============================================================
BATCH ISOLATION
============================================================
settle_event() settles each prediction in its own transaction.
A failure on one prediction is logged and skipped; the rest of
the batch proceeds and the failed one stays eligible for the
next sweep.

============================================================
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import sessionmaker

from core.clock import ClockFactory, ClockProtocol
from core.exceptions import NotFoundError
from database.engine import get_db_session, transaction_scope
from database.models import TransactionReason

from .config import SettlementConfig, get_default_config
from .outcome import aggregate_outcome
from .repository import EventRepository, LedgerRepository, PredictionRepository
from .scoring import LinearScoring, ScoringFunction, accuracy_percentage, validate_breakdown
from .types import Breakdown, EventOutcome, EventSettlementResult, to_prediction_view


logger = logging.getLogger(__name__)


class SettlementEngine:
    """
    Converts completed events into ledger entries.

    Usage:
        engine = SettlementEngine()
        breakdown = engine.settle_prediction(prediction_id)
        breakdowns = engine.settle_event(event_id)
    """

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        scoring: Optional[ScoringFunction] = None,
        clock: Optional[ClockProtocol] = None,
        config: Optional[SettlementConfig] = None,
    ):
        self._session_factory = session_factory
        self._config = config or get_default_config()
        self._scoring = scoring or LinearScoring(self._config.scoring)
        self._clock = clock or ClockFactory.get_clock()

    # --------------------------------------------------------
    # SINGLE PREDICTION
    # --------------------------------------------------------

    def settle_prediction(self, prediction_id: str) -> Optional[Breakdown]:
        """
        Settle one prediction.

        Returns:
            Breakdown if this call settled it; None if the event is not
            completed or the prediction was already settled

        Raises:
            NotFoundError: unknown prediction id
            UnresolvableOutcomeError: event has equal final scores
            PredictionShapeError / ScoringError: prediction cannot be scored
            DatabasePersistenceError: the settle transaction failed
        """
        with get_db_session(self._session_factory) as session:
            prediction = PredictionRepository(session).get(prediction_id)
            if prediction is None:
                raise NotFoundError("Prediction", prediction_id)
            if prediction.is_settled:
                logger.debug(f"Prediction {prediction_id} already settled, skipping")
                return None

            events = EventRepository(session)
            event = events.get(prediction.event_id)
            if event is None or not event.is_completed:
                logger.debug(f"Event {prediction.event_id} not completed, prediction {prediction_id} left open")
                return None

            outcome = aggregate_outcome(event, events.statistics(event.id), self._config.outcome)

        return self._settle_one(prediction_id, outcome)

    def _settle_one(self, prediction_id: str, outcome: EventOutcome) -> Optional[Breakdown]:
        with get_db_session(self._session_factory) as session:
            prediction = PredictionRepository(session).get(prediction_id)
            if prediction is None:
                raise NotFoundError("Prediction", prediction_id)
            if prediction.is_settled:
                return None
            view = to_prediction_view(prediction)

        breakdown = validate_breakdown(self._scoring.score(view, outcome), prediction_id)
        accuracy = accuracy_percentage(breakdown.total, self._config.scoring.accuracy_cap)
        now = self._clock.now()

        with transaction_scope(self._session_factory) as session:
            won = PredictionRepository(session).mark_settled(
                prediction_id,
                points=breakdown.total,
                accuracy=accuracy,
                actual_outcome=outcome.to_dict(),
                settled_at=now,
            )
            if not won:
                logger.info(f"Prediction {prediction_id} settled concurrently, no ledger entry written")
                return None

            LedgerRepository(session).append(
                user_id=view.user_id,
                points=breakdown.total,
                reason=TransactionReason.PREDICTION,
                breakdown=breakdown.to_dict(),
                description=f"{view.prediction_type.value} prediction settled",
                event_id=view.event_id,
                prediction_id=prediction_id,
                created_at=now,
            )

        logger.info(
            f"Settled prediction {prediction_id} for user {view.user_id}: "
            f"{breakdown.total} points (accuracy {accuracy}%)"
        )
        return breakdown

    # --------------------------------------------------------
    # WHOLE EVENT
    # --------------------------------------------------------

    def settle_event(self, event_id: str) -> List[Breakdown]:
        """Settle every unsettled prediction of an event; returns the new breakdowns."""
        return self.settle_event_detailed(event_id).breakdowns

    def settle_event_detailed(self, event_id: str) -> EventSettlementResult:
        """
        Settle every unsettled prediction of an event, reporting per id.

        Raises:
            NotFoundError: unknown event id
            UnresolvableOutcomeError: event has equal final scores
        """
        result = EventSettlementResult(event_id=event_id)

        with get_db_session(self._session_factory) as session:
            events = EventRepository(session)
            event = events.get(event_id)
            if event is None:
                raise NotFoundError("Event", event_id)
            if not event.is_completed:
                logger.info(f"Event {event_id} not completed ({event.status}), nothing to settle")
                return result

            outcome = aggregate_outcome(event, events.statistics(event_id), self._config.outcome)
            pending = PredictionRepository(session).unsettled_ids_for_event(event_id)

        for prediction_id in pending:
            try:
                breakdown = self._settle_one(prediction_id, outcome)
            except Exception as e:
                logger.error(f"Failed to settle prediction {prediction_id} of event {event_id}: {e}")
                result.failed[prediction_id] = str(e)
                continue

            if breakdown is None:
                result.skipped.append(prediction_id)
            else:
                result.settled[prediction_id] = breakdown

        logger.info(
            f"Event {event_id} settlement: {result.settled_count} settled, "
            f"{result.failed_count} failed, {len(result.skipped)} skipped"
        )
        return result
