"""
Settlement - Completion Monitor.

============================================================
PURPOSE
============================================================
Finds events that are ready to settle and drives the engine.

- process_completed_events: periodic sweep over COMPLETED events
  that still have unsettled predictions
- complete_event: operator-entered final score, then settle
- simulate_completion: random final score (demo/test only)
- update_event_status: feed-driven lifecycle transition
- find_stale_events: in-progress events long past their start
- lock_started_predictions: freeze predictions once play begins

============================================================
EVENT LIFECYCLE
============================================================
SCHEDULED -> LIVE -> COMPLETED

Forward only. COMPLETED is terminal. Equal or negative final
scores are rejected before anything is written.

============================================================
SWEEP SAFETY
============================================================
The sweep holds no lock. Running it repeatedly or from several
processes at once is safe because the settlement engine gates
every write on points_earned IS NULL. Lifecycle writes are
compare-and-set on the status column for the same reason.

============================================================
"""

import logging
import random
from datetime import datetime
from typing import List, Optional, Union

from sqlalchemy.orm import sessionmaker

from core.clock import ClockFactory, ClockProtocol, as_naive_utc
from core.exceptions import (
    InvalidScoreError,
    InvalidStateError,
    NotFoundError,
    UnresolvableOutcomeError,
)
from database.engine import get_db_session, transaction_scope
from database.models import EventStatus

from .config import SettlementConfig, get_default_config
from .engine import SettlementEngine
from .repository import EventRepository, PredictionRepository
from .types import Breakdown, SimulatedCompletion, StaleEvent, SweepReport


logger = logging.getLogger(__name__)


STATUS_ORDER = {
    EventStatus.SCHEDULED: 0,
    EventStatus.LIVE: 1,
    EventStatus.COMPLETED: 2,
}


def validate_scores(home_score, away_score, allow_missing: bool = False) -> None:
    """
    Reject non-integer (including bool) or negative scores.

    With allow_missing, None stands for "not reported yet" and passes.
    """
    for value in (home_score, away_score):
        if value is None and allow_missing:
            continue
        if value is None or isinstance(value, bool) or not isinstance(value, int):
            raise InvalidScoreError(home_score, away_score, "scores must be integers")
        if value < 0:
            raise InvalidScoreError(home_score, away_score, "scores must be non-negative")


def validate_final_score(event_id: str, home_score, away_score) -> None:
    """
    Reject final scores that cannot settle.

    Raises:
        InvalidScoreError: missing, non-integer or negative score
        UnresolvableOutcomeError: equal scores
    """
    validate_scores(home_score, away_score)
    if home_score == away_score:
        raise UnresolvableOutcomeError(event_id, home_score, away_score)


class CompletionMonitor:
    """
    Drives settlement for completed events.

    Usage:
        monitor = CompletionMonitor()
        report = monitor.process_completed_events(max_events=50)
        stale = monitor.find_stale_events()
    """

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        engine: Optional[SettlementEngine] = None,
        clock: Optional[ClockProtocol] = None,
        config: Optional[SettlementConfig] = None,
        rng: Optional[random.Random] = None,
    ):
        self._session_factory = session_factory
        self._config = config or get_default_config()
        self._clock = clock or ClockFactory.get_clock()
        self._engine = engine or SettlementEngine(
            session_factory=session_factory,
            clock=self._clock,
            config=self._config,
        )
        self._rng = rng or random.Random()

    @property
    def config(self) -> SettlementConfig:
        return self._config

    # --------------------------------------------------------
    # SWEEP
    # --------------------------------------------------------

    def process_completed_events(self, max_events: Optional[int] = None) -> SweepReport:
        """
        Settle every COMPLETED event that still has unsettled predictions.

        Tied events are reported in events_unresolvable and never
        attempted. Events that raise or leave predictions failed do not
        count toward max_events, so they cannot crowd out newer events.

        Args:
            max_events: Upper bound on cleanly settled events this run
                (defaults to the configured sweep limit, None = all)
        """
        if max_events is None:
            max_events = self._config.monitor.sweep_max_events

        report = SweepReport(started_at=self._clock.now())

        with get_db_session(self._session_factory) as session:
            report.events_unresolvable = EventRepository(session).find_unresolvable_ids()
        for event_id in report.events_unresolvable:
            logger.error(f"Event {event_id} is completed with tied scores, operator correction required")

        attempted: List[str] = []
        budget_used = 0
        while True:
            remaining = None if max_events is None else max_events - budget_used
            with get_db_session(self._session_factory) as session:
                batch = EventRepository(session).find_settleable_ids(
                    limit=1 if remaining == 0 else remaining,
                    exclude=attempted,
                )
            if remaining == 0:
                report.truncated = bool(batch)
                break
            if not batch:
                break

            for event_id in batch:
                attempted.append(event_id)
                report.events_found += 1
                try:
                    result = self._engine.settle_event_detailed(event_id)
                except Exception as e:
                    logger.error(f"Sweep failed on event {event_id}: {e}")
                    report.events_failed.append(event_id)
                    continue

                report.events_processed += 1
                report.predictions_settled += result.settled_count
                report.predictions_failed += result.failed_count
                if result.failed_count == 0:
                    budget_used += 1

        report.finished_at = self._clock.now()
        logger.info(
            f"Sweep complete: {report.events_processed}/{report.events_found} events, "
            f"{report.predictions_settled} predictions settled, "
            f"{report.predictions_failed} failed, "
            f"{len(report.events_unresolvable)} unresolvable"
            + (" (truncated)" if report.truncated else "")
        )
        return report

    # --------------------------------------------------------
    # OPERATOR COMPLETION
    # --------------------------------------------------------

    def complete_event(self, event_id: str, home_score: int, away_score: int) -> List[Breakdown]:
        """
        Record the final score of an event and settle it.

        Raises:
            NotFoundError: unknown event
            InvalidStateError: event already COMPLETED
            InvalidScoreError: negative or non-integer score
            UnresolvableOutcomeError: equal scores
        """
        with get_db_session(self._session_factory) as session:
            event = EventRepository(session).get(event_id)
            if event is None:
                raise NotFoundError("Event", event_id)
            if event.status == EventStatus.COMPLETED.value:
                raise InvalidStateError(
                    f"Event {event_id} is already completed",
                    entity_id=event_id,
                    current_state=event.status,
                )
        validate_final_score(event_id, home_score, away_score)
        completed_at = self._clock.now()

        # The status guard in the UPDATE decides between concurrent completions
        with transaction_scope(self._session_factory) as session:
            won = EventRepository(session).mark_completed(event_id, home_score, away_score, completed_at)
        if not won:
            raise InvalidStateError(
                f"Event {event_id} was completed concurrently",
                entity_id=event_id,
                current_state=EventStatus.COMPLETED.value,
            )

        logger.info(f"Event {event_id} completed {home_score}-{away_score}, settling")
        return self._engine.settle_event(event_id)

    def simulate_completion(self, event_id: str) -> SimulatedCompletion:
        """
        Complete an event with random scores. Demo and test use only.

        Raises:
            NotFoundError: unknown event
            InvalidStateError: event already COMPLETED
        """
        with get_db_session(self._session_factory) as session:
            event = EventRepository(session).get(event_id)
            if event is None:
                raise NotFoundError("Event", event_id)
            if event.status == EventStatus.COMPLETED.value:
                raise InvalidStateError(
                    f"Event {event_id} is already completed",
                    entity_id=event_id,
                    current_state=event.status,
                )

        low = self._config.monitor.simulated_score_min
        high = self._config.monitor.simulated_score_max
        home_score = self._rng.randint(low, high)
        away_score = self._rng.randint(low, high)
        while away_score == home_score:
            away_score = self._rng.randint(low, high)

        logger.warning(f"Simulating completion of event {event_id}: {home_score}-{away_score}")
        breakdowns = self.complete_event(event_id, home_score, away_score)
        return SimulatedCompletion(
            event_id=event_id,
            home_score=home_score,
            away_score=away_score,
            breakdowns=breakdowns,
        )

    # --------------------------------------------------------
    # FEED-DRIVEN TRANSITIONS
    # --------------------------------------------------------

    def update_event_status(
        self,
        event_id: str,
        status: Union[str, EventStatus],
        home_score: Optional[int] = None,
        away_score: Optional[int] = None,
    ) -> List[Breakdown]:
        """
        Move an event forward through its lifecycle.

        Reaching COMPLETED requires both final scores (given here or
        already stored) and settles the event immediately.

        Returns:
            Breakdowns of predictions settled by this transition

        Raises:
            NotFoundError: unknown event
            InvalidStateError: unknown status, backwards move or leaving COMPLETED
            InvalidScoreError / UnresolvableOutcomeError: bad final score
        """
        try:
            target = EventStatus(status.upper() if isinstance(status, str) else status)
        except ValueError:
            raise InvalidStateError(f"Unknown event status: {status!r}", entity_id=event_id)

        with transaction_scope(self._session_factory) as session:
            events = EventRepository(session)
            event = events.get(event_id)
            if event is None:
                raise NotFoundError("Event", event_id)

            current = EventStatus(event.status)
            if current is EventStatus.COMPLETED:
                raise InvalidStateError(
                    f"Event {event_id} is completed and cannot change status",
                    entity_id=event_id,
                    current_state=current.value,
                )
            if STATUS_ORDER[target] < STATUS_ORDER[current]:
                raise InvalidStateError(
                    f"Event {event_id} cannot move from {current.value} to {target.value}",
                    entity_id=event_id,
                    current_state=current.value,
                )

            if target is not EventStatus.COMPLETED:
                validate_scores(home_score, away_score, allow_missing=True)
                if not events.set_status(event_id, current, target, home_score, away_score):
                    raise InvalidStateError(
                        f"Event {event_id} changed status concurrently",
                        entity_id=event_id,
                        current_state=current.value,
                    )
                logger.info(f"Event {event_id} moved {current.value} -> {target.value}")
                return []

            final_home = home_score if home_score is not None else event.home_score
            final_away = away_score if away_score is not None else event.away_score

        return self.complete_event(event_id, final_home, final_away)

    # --------------------------------------------------------
    # OPERATOR VIEWS
    # --------------------------------------------------------

    def find_stale_events(self, now: Optional[datetime] = None) -> List[StaleEvent]:
        """SCHEDULED/LIVE events that started more than the grace window ago."""
        now = as_naive_utc(now) if now is not None else self._clock.now()
        grace = self._config.monitor.grace_window
        cutoff = now - grace

        with get_db_session(self._session_factory) as session:
            rows = EventRepository(session).find_stale(cutoff)
            stale = [
                StaleEvent(
                    event_id=event.id,
                    home_team=event.home_team,
                    away_team=event.away_team,
                    status=EventStatus(event.status),
                    start_time=event.start_time,
                    overdue_by=now - event.start_time - grace,
                    prediction_count=count,
                )
                for event, count in rows
            ]

        if stale:
            logger.warning(f"{len(stale)} event(s) need attention (in progress past {grace})")
        return stale

    def lock_started_predictions(self, now: Optional[datetime] = None) -> int:
        """Lock predictions of events whose start time has passed or that left SCHEDULED."""
        now = as_naive_utc(now) if now is not None else self._clock.now()
        with transaction_scope(self._session_factory) as session:
            locked = PredictionRepository(session).lock_started(now)
        if locked:
            logger.info(f"Locked {locked} prediction(s) for started events")
        return locked
