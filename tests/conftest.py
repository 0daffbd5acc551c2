"""
Shared fixtures for settlement tests.

Each test gets a throwaway SQLite database file and a MockClock
installed as the process clock.
"""

import pytest
from datetime import datetime, timedelta
from typing import Optional

from core.clock import ClockFactory, MockClock
from database.engine import configure_database, create_all_tables, get_engine, transaction_scope
from database.models import Event, EventStatistic, Prediction, PredictionType, TransactionReason
from settlement.repository import LedgerRepository


FIXED_NOW = datetime(2025, 3, 1, 12, 0, 0)


# =============================================================
# SEED HELPER
# =============================================================

class Seeder:
    """Inserts rows directly, bypassing the services under test."""

    def __init__(self, session_factory, clock: MockClock):
        self.factory = session_factory
        self.clock = clock

    def event(
        self,
        home_team: str = "BOS",
        away_team: str = "LAL",
        start_time: Optional[datetime] = None,
        status: str = "SCHEDULED",
        home_score: Optional[int] = None,
        away_score: Optional[int] = None,
    ) -> str:
        with transaction_scope(self.factory) as session:
            event = Event(
                home_team=home_team,
                away_team=away_team,
                start_time=start_time or self.clock.now() - timedelta(hours=1),
                status=status,
                home_score=home_score,
                away_score=away_score,
            )
            session.add(event)
            session.flush()
            return event.id

    def completed_event(self, home_score: int = 101, away_score: int = 98, **kwargs) -> str:
        return self.event(status="COMPLETED", home_score=home_score, away_score=away_score, **kwargs)

    def prediction(
        self,
        event_id: str,
        user_id: str = "user-1",
        prediction_type: PredictionType = PredictionType.GAME_WINNER,
        winner: Optional[str] = "HOME",
        home_score: Optional[int] = None,
        away_score: Optional[int] = None,
        home_threes: Optional[int] = None,
        away_threes: Optional[int] = None,
        settled_points: Optional[int] = None,
    ) -> str:
        with transaction_scope(self.factory) as session:
            prediction = Prediction(
                user_id=user_id,
                event_id=event_id,
                prediction_type=prediction_type.value,
                predicted_winner=winner,
                predicted_home_score=home_score,
                predicted_away_score=away_score,
                predicted_home_threes=home_threes,
                predicted_away_threes=away_threes,
            )
            if settled_points is not None:
                prediction.points_earned = settled_points
                prediction.accuracy_score = settled_points / 2
                prediction.settled_at = self.clock.now()
            session.add(prediction)
            session.flush()
            return prediction.id

    def stat(
        self,
        event_id: str,
        team: str,
        value: float,
        stat_type: str = "3pm",
        player: str = "Player",
    ) -> None:
        with transaction_scope(self.factory) as session:
            session.add(EventStatistic(
                event_id=event_id,
                player_name=player,
                team_abbreviation=team,
                stat_type=stat_type,
                stat_value=value,
            ))

    def ledger(
        self,
        user_id: str,
        points: int,
        created_at: Optional[datetime] = None,
        reason: TransactionReason = TransactionReason.BONUS,
        event_id: Optional[str] = None,
    ) -> int:
        with transaction_scope(self.factory) as session:
            tx = LedgerRepository(session).append(
                user_id=user_id,
                points=points,
                reason=reason,
                event_id=event_id,
                created_at=created_at or self.clock.now(),
            )
            return tx.id


# =============================================================
# FIXTURES
# =============================================================

@pytest.fixture
def clock():
    """MockClock installed as the global clock."""
    mock = MockClock(FIXED_NOW)
    ClockFactory.set_clock(mock)
    yield mock
    ClockFactory.reset()


@pytest.fixture
def session_factory(tmp_path, clock):
    """Fresh SQLite database with all tables."""
    factory = configure_database(f"sqlite:///{tmp_path / 'settlement.db'}")
    create_all_tables()
    yield factory
    get_engine().dispose()


@pytest.fixture
def seed(session_factory, clock):
    return Seeder(session_factory, clock)
