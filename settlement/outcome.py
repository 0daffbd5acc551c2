"""
Settlement - Outcome Aggregator.

============================================================
PURPOSE
============================================================
Derives the normalized outcome of a completed event from the
event row and the raw statistics feed.

- winner: side with the strictly greater final score
- home_threes / away_threes: made three-pointers per team,
  summed from player rows and mapped onto home/away

Equal final scores never resolve to a side. They raise
UnresolvableOutcomeError and are logged as a data-quality
fault for an operator to correct.

Read-only. No side effects.

============================================================
"""

import logging
from typing import Dict, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from core.exceptions import InvalidStateError, NotFoundError, UnresolvableOutcomeError
from database.engine import get_db_session
from database.models import Event, EventStatistic, EventStatus, Side

from .config import OutcomeConfig
from .types import EventOutcome


logger = logging.getLogger(__name__)


def sum_team_threes(statistics: Iterable, three_point_stat_type: str = "3pm") -> Dict[str, int]:
    """
    Bucket made three-pointers by team abbreviation.

    Keys are upper-cased so callers can compare case-insensitively.
    """
    marker = three_point_stat_type.lower()
    totals: Dict[str, float] = {}
    for stat in statistics:
        if (stat.stat_type or "").lower() != marker:
            continue
        team = (stat.team_abbreviation or "").upper()
        totals[team] = totals.get(team, 0) + (stat.stat_value or 0)
    return {team: int(round(value)) for team, value in totals.items()}


def aggregate_outcome(
    event: Event,
    statistics: Iterable[EventStatistic],
    config: Optional[OutcomeConfig] = None,
) -> EventOutcome:
    """
    Build the outcome of a completed event.

    Args:
        event: Event row (must be COMPLETED with both scores)
        statistics: Raw statistic rows for the event
        config: Feed conventions (three-point marker)

    Returns:
        EventOutcome

    Raises:
        InvalidStateError: event is not completed or scores are missing
        UnresolvableOutcomeError: final scores are equal
    """
    config = config or OutcomeConfig()

    if event.status != EventStatus.COMPLETED.value:
        raise InvalidStateError(
            f"Event {event.id} is not completed",
            entity_id=event.id,
            current_state=event.status,
        )
    if event.home_score is None or event.away_score is None:
        raise InvalidStateError(
            f"Event {event.id} is completed without final scores",
            entity_id=event.id,
            current_state=event.status,
        )

    if event.home_score == event.away_score:
        error = UnresolvableOutcomeError(event.id, event.home_score, event.away_score)
        logger.error(error.to_log_format())
        raise error

    winner = Side.HOME if event.home_score > event.away_score else Side.AWAY

    threes = sum_team_threes(statistics, config.three_point_stat_type)

    return EventOutcome(
        event_id=event.id,
        home_team=event.home_team,
        away_team=event.away_team,
        home_score=event.home_score,
        away_score=event.away_score,
        winner=winner,
        home_threes=threes.get((event.home_team or "").upper(), 0),
        away_threes=threes.get((event.away_team or "").upper(), 0),
    )


class OutcomeAggregator:
    """Loads an event and its statistics and builds the outcome."""

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        config: Optional[OutcomeConfig] = None,
    ):
        self._session_factory = session_factory
        self._config = config or OutcomeConfig()

    def build(self, event_id: str, session: Optional[Session] = None) -> EventOutcome:
        """
        Build the outcome for one event.

        Raises:
            NotFoundError: unknown event id
            InvalidStateError: event not completed
            UnresolvableOutcomeError: equal final scores
        """
        if session is not None:
            return self._build(session, event_id)
        with get_db_session(self._session_factory) as own_session:
            return self._build(own_session, event_id)

    def _build(self, session: Session, event_id: str) -> EventOutcome:
        event = session.get(Event, event_id)
        if event is None:
            raise NotFoundError("Event", event_id)

        statistics = session.execute(
            select(EventStatistic).where(EventStatistic.event_id == event_id)
        ).scalars().all()

        return aggregate_outcome(event, statistics, self._config)
