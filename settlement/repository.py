"""
Settlement - Repository.

============================================================
PURPOSE
============================================================
Repository pattern implementation for settlement persistence.

Provides clean interface for:
- Looking up events and their lifecycle state
- Finding unsettled, settleable and stale work
- The conditional settle UPDATE (the idempotency gate)
- Appending to and reading the points ledger

Repositories never commit. The caller owns the transaction
(see database.engine.transaction_scope).

============================================================
"""

from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import and_, case, exists, func, or_, select, update
from sqlalchemy.orm import Session

from database.models import (
    Event,
    EventStatistic,
    EventStatus,
    PointsTransaction,
    Prediction,
    TransactionReason,
)


# ============================================================
# EVENTS
# ============================================================


class EventRepository:
    """
    Repository for event reads and lifecycle writes.

    ============================================================
    METHODS
    ============================================================
    - get: Event by id (None if unknown)
    - statistics: Raw statistic rows for an event
    - find_settleable_ids: Decided COMPLETED events with unsettled predictions
    - find_unresolvable_ids: Tied COMPLETED events with unsettled predictions
    - find_stale: In-progress events that started before a cutoff
    - mark_completed / set_status: Conditional lifecycle writes

    ============================================================
    """

    def __init__(self, session: Session):
        self._session = session

    # --------------------------------------------------------
    # READ OPERATIONS
    # --------------------------------------------------------

    def get(self, event_id: str) -> Optional[Event]:
        return self._session.get(Event, event_id)

    def statistics(self, event_id: str) -> List[EventStatistic]:
        return list(
            self._session.execute(
                select(EventStatistic).where(EventStatistic.event_id == event_id)
            ).scalars()
        )

    def find_settleable_ids(
        self,
        limit: Optional[int] = None,
        exclude: Optional[Sequence[str]] = None,
    ) -> List[str]:
        """
        Ids of COMPLETED events with both scores, a decided result and
        at least one unsettled prediction, oldest start first.

        Tied events never appear here; see find_unresolvable_ids().
        """
        has_unsettled = exists().where(
            and_(Prediction.event_id == Event.id, Prediction.points_earned.is_(None))
        )
        stmt = (
            select(Event.id)
            .where(
                Event.status == EventStatus.COMPLETED.value,
                Event.home_score.is_not(None),
                Event.away_score.is_not(None),
                Event.home_score != Event.away_score,
                has_unsettled,
            )
            .order_by(Event.start_time.asc(), Event.id.asc())
        )
        if exclude:
            stmt = stmt.where(Event.id.not_in(list(exclude)))
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self._session.execute(stmt).scalars())

    def find_unresolvable_ids(self) -> List[str]:
        """COMPLETED events with equal final scores and unsettled predictions."""
        has_unsettled = exists().where(
            and_(Prediction.event_id == Event.id, Prediction.points_earned.is_(None))
        )
        stmt = (
            select(Event.id)
            .where(
                Event.status == EventStatus.COMPLETED.value,
                Event.home_score.is_not(None),
                Event.home_score == Event.away_score,
                has_unsettled,
            )
            .order_by(Event.start_time.asc(), Event.id.asc())
        )
        return list(self._session.execute(stmt).scalars())

    def find_stale(self, cutoff: datetime) -> List[Tuple[Event, int]]:
        """
        SCHEDULED/LIVE events whose start_time is strictly before cutoff,
        paired with their prediction count.
        """
        prediction_count = (
            select(func.count(Prediction.id))
            .where(Prediction.event_id == Event.id)
            .correlate(Event)
            .scalar_subquery()
        )
        stmt = (
            select(Event, prediction_count)
            .where(
                Event.status.in_([EventStatus.SCHEDULED.value, EventStatus.LIVE.value]),
                Event.start_time < cutoff,
            )
            .order_by(Event.start_time.asc(), Event.id.asc())
        )
        return [(event, int(count or 0)) for event, count in self._session.execute(stmt).all()]

    # --------------------------------------------------------
    # WRITE OPERATIONS
    # --------------------------------------------------------

    def mark_completed(self, event_id: str, home_score: int, away_score: int, completed_at: datetime) -> bool:
        """
        Conditional move to COMPLETED.

        Returns False when the event is already COMPLETED (or gone),
        so concurrent completions cannot overwrite final scores.
        """
        result = self._session.execute(
            update(Event)
            .where(Event.id == event_id, Event.status != EventStatus.COMPLETED.value)
            .values(
                status=EventStatus.COMPLETED.value,
                home_score=home_score,
                away_score=away_score,
                completed_at=completed_at,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def set_status(
        self,
        event_id: str,
        expected: EventStatus,
        status: EventStatus,
        home_score: Optional[int] = None,
        away_score: Optional[int] = None,
    ) -> bool:
        """Compare-and-set the status; scores given as None are left alone."""
        values = {"status": status.value}
        if home_score is not None:
            values["home_score"] = home_score
        if away_score is not None:
            values["away_score"] = away_score
        result = self._session.execute(
            update(Event)
            .where(Event.id == event_id, Event.status == expected.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


# ============================================================
# PREDICTIONS
# ============================================================


class PredictionRepository:
    """
    Repository for prediction reads and the one-time settle write.

    ============================================================
    METHODS
    ============================================================
    - get: Prediction by id
    - unsettled_ids_for_event: Work list for one event
    - mark_settled: Conditional UPDATE gated on points_earned IS NULL
    - lock_started: Lock predictions of started events
    - user counts and streak inputs for the aggregate reader

    ============================================================
    """

    def __init__(self, session: Session):
        self._session = session

    # --------------------------------------------------------
    # READ OPERATIONS
    # --------------------------------------------------------

    def get(self, prediction_id: str) -> Optional[Prediction]:
        return self._session.get(Prediction, prediction_id)

    def unsettled_ids_for_event(self, event_id: str) -> List[str]:
        stmt = (
            select(Prediction.id)
            .where(Prediction.event_id == event_id, Prediction.points_earned.is_(None))
            .order_by(Prediction.submitted_at.asc(), Prediction.id.asc())
        )
        return list(self._session.execute(stmt).scalars())

    def for_user_event(self, user_id: str, event_id: str) -> Optional[Prediction]:
        return self._session.execute(
            select(Prediction).where(
                Prediction.user_id == user_id, Prediction.event_id == event_id
            )
        ).scalar_one_or_none()

    def count_for_user(self, user_id: str) -> int:
        return self._session.execute(
            select(func.count(Prediction.id)).where(Prediction.user_id == user_id)
        ).scalar_one()

    def count_correct_for_user(self, user_id: str) -> int:
        return self._session.execute(
            select(func.count(Prediction.id)).where(
                Prediction.user_id == user_id, Prediction.points_earned > 0
            )
        ).scalar_one()

    def settled_points_by_start(self, user_ids: Optional[Sequence[str]] = None) -> Dict[str, List[int]]:
        """
        points_earned of settled predictions per user, ordered by the
        event start time ascending.
        """
        stmt = (
            select(Prediction.user_id, Prediction.points_earned)
            .join(Event, Event.id == Prediction.event_id)
            .where(Prediction.points_earned.is_not(None))
            .order_by(Prediction.user_id, Event.start_time.asc(), Prediction.id.asc())
        )
        if user_ids is not None:
            stmt = stmt.where(Prediction.user_id.in_(list(user_ids)))

        series: Dict[str, List[int]] = {}
        for user_id, points in self._session.execute(stmt).all():
            series.setdefault(user_id, []).append(points)
        return series

    def counts_by_user(self, user_ids: Optional[Sequence[str]] = None) -> Dict[str, Tuple[int, int]]:
        """(total, correct) prediction counts per user."""
        correct = func.sum(case((Prediction.points_earned > 0, 1), else_=0))
        stmt = select(Prediction.user_id, func.count(Prediction.id), correct).group_by(Prediction.user_id)
        if user_ids is not None:
            stmt = stmt.where(Prediction.user_id.in_(list(user_ids)))
        return {
            user_id: (int(total), int(correct_count or 0))
            for user_id, total, correct_count in self._session.execute(stmt).all()
        }

    # --------------------------------------------------------
    # WRITE OPERATIONS
    # --------------------------------------------------------

    def mark_settled(
        self,
        prediction_id: str,
        points: int,
        accuracy: float,
        actual_outcome: dict,
        settled_at: datetime,
    ) -> bool:
        """
        Write the settlement result if and only if still unsettled.

        Returns:
            True if this call settled the prediction, False if another
            settler already had
        """
        result = self._session.execute(
            update(Prediction)
            .where(Prediction.id == prediction_id, Prediction.points_earned.is_(None))
            .values(
                points_earned=points,
                accuracy_score=accuracy,
                actual_outcome=actual_outcome,
                settled_at=settled_at,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def lock_started(self, now: datetime) -> int:
        """Lock unlocked predictions of events that have started."""
        started = select(Event.id).where(
            or_(Event.start_time <= now, Event.status != EventStatus.SCHEDULED.value)
        )
        result = self._session.execute(
            update(Prediction)
            .where(Prediction.is_locked.is_(False), Prediction.event_id.in_(started))
            .values(is_locked=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0


# ============================================================
# LEDGER
# ============================================================


class LedgerRepository:
    """
    Repository for the append-only points ledger.

    ============================================================
    METHODS
    ============================================================
    - append: Insert one transaction (never update, never delete)
    - sum_points: Signed total, optionally since a timestamp
    - page: Keyset page on (created_at, id), newest first
    - for_prediction / for_user_event: Point lookups
    - totals_by_user: Leaderboard input

    ============================================================
    """

    def __init__(self, session: Session):
        self._session = session

    # --------------------------------------------------------
    # WRITE OPERATIONS
    # --------------------------------------------------------

    def append(
        self,
        user_id: str,
        points: int,
        reason: TransactionReason,
        breakdown: Optional[dict] = None,
        description: Optional[str] = None,
        event_id: Optional[str] = None,
        prediction_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> PointsTransaction:
        tx = PointsTransaction(
            user_id=user_id,
            points=points,
            reason=reason.value,
            breakdown=breakdown,
            description=description,
            event_id=event_id,
            prediction_id=prediction_id,
        )
        if created_at is not None:
            tx.created_at = created_at
        self._session.add(tx)
        self._session.flush()
        return tx

    # --------------------------------------------------------
    # READ OPERATIONS
    # --------------------------------------------------------

    def sum_points(self, user_id: str, since: Optional[datetime] = None) -> int:
        stmt = select(func.coalesce(func.sum(PointsTransaction.points), 0)).where(
            PointsTransaction.user_id == user_id
        )
        if since is not None:
            stmt = stmt.where(PointsTransaction.created_at >= since)
        return int(self._session.execute(stmt).scalar_one())

    def page(
        self,
        user_id: str,
        limit: int,
        before_created_at: Optional[datetime] = None,
        before_id: Optional[int] = None,
        reason: Optional[TransactionReason] = None,
        event_id: Optional[str] = None,
    ) -> List[PointsTransaction]:
        """
        Transactions newest first, strictly after the keyset position.

        With only before_created_at, rows strictly older than it.
        """
        stmt = select(PointsTransaction).where(PointsTransaction.user_id == user_id)

        if reason is not None:
            stmt = stmt.where(PointsTransaction.reason == reason.value)
        if event_id is not None:
            stmt = stmt.where(PointsTransaction.event_id == event_id)

        if before_created_at is not None:
            if before_id is not None:
                stmt = stmt.where(
                    or_(
                        PointsTransaction.created_at < before_created_at,
                        and_(
                            PointsTransaction.created_at == before_created_at,
                            PointsTransaction.id < before_id,
                        ),
                    )
                )
            else:
                stmt = stmt.where(PointsTransaction.created_at < before_created_at)

        stmt = stmt.order_by(
            PointsTransaction.created_at.desc(), PointsTransaction.id.desc()
        ).limit(limit)
        return list(self._session.execute(stmt).scalars())

    def for_prediction(self, prediction_id: str) -> Optional[PointsTransaction]:
        return self._session.execute(
            select(PointsTransaction).where(PointsTransaction.prediction_id == prediction_id)
        ).scalar_one_or_none()

    def for_user_event(
        self,
        user_id: str,
        event_id: str,
        reason: TransactionReason = TransactionReason.PREDICTION,
    ) -> Optional[PointsTransaction]:
        return self._session.execute(
            select(PointsTransaction)
            .where(
                PointsTransaction.user_id == user_id,
                PointsTransaction.event_id == event_id,
                PointsTransaction.reason == reason.value,
            )
            .order_by(PointsTransaction.created_at.desc(), PointsTransaction.id.desc())
            .limit(1)
        ).scalar_one_or_none()

    def totals_by_user(self, user_ids: Optional[Sequence[str]] = None) -> Dict[str, int]:
        stmt = select(
            PointsTransaction.user_id, func.sum(PointsTransaction.points)
        ).group_by(PointsTransaction.user_id)
        if user_ids is not None:
            stmt = stmt.where(PointsTransaction.user_id.in_(list(user_ids)))
        return {user_id: int(total or 0) for user_id, total in self._session.execute(stmt).all()}
