"""
Settlement - Aggregate Reader.

============================================================
PURPOSE
============================================================
Serves derived point statistics read back from the ledger
and the predictions table. Nothing here is cached or stored:
every number is recomputed on each call.

- summary:        totals, trailing week/month, accuracy, streaks
- history:        keyset-paginated ledger, newest first
- event_summary:  points a user earned on one event
- leaderboard:    users sorted by total points

============================================================
CORRECTNESS
============================================================
A prediction counts as correct when points_earned > 0. The same
predicate drives accuracy, streaks and the leaderboard.

============================================================
CURSORS
============================================================
"<created_at ISO>|<transaction id>"  exact keyset position
"<created_at ISO>"                   rows strictly older

============================================================
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple, Union

from sqlalchemy.orm import sessionmaker

from core.clock import ClockFactory, ClockProtocol, as_naive_utc, from_iso8601, to_iso8601
from core.exceptions import InvalidCursorError
from database.engine import get_db_session
from database.models import TransactionReason

from .config import AggregateConfig, get_default_config
from .ledger import to_ledger_entry
from .repository import LedgerRepository, PredictionRepository
from .types import (
    EventPointsSummary,
    HistoryPage,
    LeaderboardEntry,
    PointsSummary,
)


logger = logging.getLogger(__name__)


# ============================================================
# PURE HELPERS
# ============================================================


def current_streak(points: Sequence[int]) -> int:
    """Consecutive correct predictions counting back from the latest."""
    streak = 0
    for value in reversed(points):
        if value > 0:
            streak += 1
        else:
            break
    return streak


def best_streak(points: Sequence[int]) -> int:
    """Longest run of consecutive correct predictions."""
    best = run = 0
    for value in points:
        run = run + 1 if value > 0 else 0
        best = max(best, run)
    return best


def accuracy_of(correct: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return round(correct / total * 100, 2)


def encode_cursor(created_at: datetime, transaction_id: int) -> str:
    return f"{to_iso8601(created_at)}|{transaction_id}"


def decode_cursor(cursor: str) -> Tuple[datetime, Optional[int]]:
    """
    Parse a history cursor.

    Raises:
        InvalidCursorError: cursor is not an ISO timestamp, optionally
            followed by "|<id>"
    """
    stamp, _, raw_id = cursor.partition("|")
    try:
        created_at = from_iso8601(stamp)
        transaction_id = int(raw_id) if raw_id else None
    except ValueError:
        raise InvalidCursorError(cursor)
    return created_at, transaction_id


# ============================================================
# READER
# ============================================================


class AggregateReader:
    """
    Read-only views over the ledger.

    Usage:
        reader = AggregateReader()
        summary = reader.summary(user_id)
        page = reader.history(user_id, limit=20)
        page = reader.history(user_id, cursor=page.next_cursor)
    """

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        clock: Optional[ClockProtocol] = None,
        config: Optional[AggregateConfig] = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or ClockFactory.get_clock()
        self._config = config or get_default_config().aggregates

    def _resolve_now(self, now: Optional[datetime]) -> datetime:
        return as_naive_utc(now) if now is not None else self._clock.now()

    # --------------------------------------------------------
    # SUMMARY
    # --------------------------------------------------------

    def summary(self, user_id: str, now: Optional[datetime] = None) -> PointsSummary:
        now = self._resolve_now(now)
        week_start = now - timedelta(days=self._config.week_days)
        month_start = now - timedelta(days=self._config.month_days)

        with get_db_session(self._session_factory) as session:
            ledger = LedgerRepository(session)
            predictions = PredictionRepository(session)

            total = ledger.sum_points(user_id)
            week = ledger.sum_points(user_id, since=week_start)
            month = ledger.sum_points(user_id, since=month_start)

            total_predictions = predictions.count_for_user(user_id)
            correct = predictions.count_correct_for_user(user_id)
            series = predictions.settled_points_by_start([user_id]).get(user_id, [])

        return PointsSummary(
            user_id=user_id,
            total_points=total,
            points_this_week=week,
            points_this_month=month,
            total_predictions=total_predictions,
            correct_predictions=correct,
            accuracy_percentage=accuracy_of(correct, total_predictions),
            current_streak=current_streak(series),
            best_streak=best_streak(series),
        )

    # --------------------------------------------------------
    # HISTORY
    # --------------------------------------------------------

    def history(
        self,
        user_id: str,
        cursor: Optional[str] = None,
        limit: Optional[int] = None,
        reason: Optional[Union[str, TransactionReason]] = None,
        event_id: Optional[str] = None,
    ) -> HistoryPage:
        """
        One page of a user's ledger, newest first.

        Raises:
            InvalidCursorError: unparseable cursor
        """
        limit = self._config.clamp_limit(limit)
        before_created_at, before_id = decode_cursor(cursor) if cursor else (None, None)
        reason_filter = TransactionReason(reason) if reason is not None else None

        with get_db_session(self._session_factory) as session:
            rows = LedgerRepository(session).page(
                user_id,
                limit=limit + 1,
                before_created_at=before_created_at,
                before_id=before_id,
                reason=reason_filter,
                event_id=event_id,
            )
            entries = [to_ledger_entry(row) for row in rows]

        has_more = len(entries) > limit
        entries = entries[:limit]
        next_cursor = None
        if has_more:
            last = entries[-1]
            next_cursor = encode_cursor(last.created_at, last.id)

        return HistoryPage(transactions=entries, next_cursor=next_cursor, has_more=has_more)

    # --------------------------------------------------------
    # EVENT SUMMARY
    # --------------------------------------------------------

    def event_summary(self, event_id: str, user_id: str) -> Optional[EventPointsSummary]:
        with get_db_session(self._session_factory) as session:
            tx = LedgerRepository(session).for_user_event(user_id, event_id)
            if tx is None:
                return None
            return EventPointsSummary(
                event_id=event_id,
                user_id=user_id,
                points_earned=tx.points,
                breakdown=tx.breakdown,
                earned_at=tx.created_at,
            )

    # --------------------------------------------------------
    # LEADERBOARD
    # --------------------------------------------------------

    def leaderboard(
        self,
        user_ids: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
    ) -> List[LeaderboardEntry]:
        """Users sorted by total points descending, ties by user id."""
        limit = limit if limit is not None else self._config.leaderboard_default_limit
        if limit <= 0:
            return []

        with get_db_session(self._session_factory) as session:
            totals = LedgerRepository(session).totals_by_user(user_ids)
            predictions = PredictionRepository(session)
            counts = predictions.counts_by_user(user_ids)
            series = predictions.settled_points_by_start(user_ids)

        users = set(totals) | set(counts)
        if user_ids is not None:
            users |= set(user_ids)

        entries = []
        for user_id in users:
            total_predictions, correct = counts.get(user_id, (0, 0))
            points = series.get(user_id, [])
            entries.append(
                LeaderboardEntry(
                    user_id=user_id,
                    total_points=totals.get(user_id, 0),
                    total_predictions=total_predictions,
                    correct_predictions=correct,
                    accuracy_percentage=accuracy_of(correct, total_predictions),
                    current_streak=current_streak(points),
                    best_streak=best_streak(points),
                )
            )

        entries.sort(key=lambda e: (-e.total_points, e.user_id))
        return entries[:limit]
