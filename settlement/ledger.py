"""
Settlement - Ledger Service.

Append-only access to the points ledger plus the admin
adjustment path. Settlement writes prediction entries through
LedgerRepository inside its own transaction; everything else
goes through here.
"""

import logging
from typing import Optional, Union

from sqlalchemy.orm import Session, sessionmaker

from core.clock import ClockFactory, ClockProtocol
from core.exceptions import InvalidAdjustmentError, NotFoundError
from database.engine import transaction_scope
from database.models import PointsTransaction, TransactionReason

from .repository import EventRepository, LedgerRepository
from .types import LedgerEntry


logger = logging.getLogger(__name__)


ADJUSTMENT_REASONS = (TransactionReason.BONUS, TransactionReason.LESSON, TransactionReason.PENALTY)


def to_ledger_entry(tx: PointsTransaction) -> LedgerEntry:
    """Detach a ledger row into its read model."""
    return LedgerEntry(
        id=tx.id,
        user_id=tx.user_id,
        event_id=tx.event_id,
        prediction_id=tx.prediction_id,
        points=tx.points,
        reason=TransactionReason(tx.reason),
        breakdown=tx.breakdown,
        description=tx.description,
        created_at=tx.created_at,
    )


def resolve_adjustment_reason(
    points: int,
    reason: Optional[Union[str, TransactionReason]] = None,
) -> TransactionReason:
    """
    Pick the ledger reason for a manual adjustment.

    Defaults to bonus for positive amounts and penalty for negative
    ones. prediction is reserved for settlement.
    """
    if reason is None:
        return TransactionReason.BONUS if points >= 0 else TransactionReason.PENALTY

    try:
        resolved = TransactionReason(reason.lower() if isinstance(reason, str) else reason)
    except ValueError:
        raise InvalidAdjustmentError(f"Unknown adjustment reason: {reason!r}")

    if resolved not in ADJUSTMENT_REASONS:
        raise InvalidAdjustmentError(
            f"Reason '{resolved.value}' is reserved for settlement",
            context={"reason": resolved.value},
        )
    return resolved


class LedgerService:
    """Writes to the points ledger outside of prediction settlement."""

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or ClockFactory.get_clock()

    def record(
        self,
        session: Session,
        user_id: str,
        points: int,
        reason: TransactionReason,
        breakdown: Optional[dict] = None,
        description: Optional[str] = None,
        event_id: Optional[str] = None,
        prediction_id: Optional[str] = None,
    ) -> PointsTransaction:
        """Append one transaction inside the caller's session. Never commits."""
        return LedgerRepository(session).append(
            user_id=user_id,
            points=points,
            reason=reason,
            breakdown=breakdown,
            description=description,
            event_id=event_id,
            prediction_id=prediction_id,
            created_at=self._clock.now(),
        )

    def adjust_points(
        self,
        user_id: str,
        points: int,
        reason: Optional[Union[str, TransactionReason]] = None,
        description: Optional[str] = None,
        event_id: Optional[str] = None,
    ) -> LedgerEntry:
        """
        Post a manual adjustment.

        Raises:
            InvalidAdjustmentError: empty user, zero amount or reserved reason
            NotFoundError: event_id given but unknown
        """
        if not user_id:
            raise InvalidAdjustmentError("user_id is required")
        if isinstance(points, bool) or not isinstance(points, int):
            raise InvalidAdjustmentError(f"Adjustment amount must be an integer, got {points!r}")
        if points == 0:
            raise InvalidAdjustmentError("Adjustment amount must be non-zero")

        resolved = resolve_adjustment_reason(points, reason)
        breakdown = {
            "bonus_points": points,
            "total": points,
            "details": {"winner_correct": False},
        }

        with transaction_scope(self._session_factory) as session:
            if event_id is not None and EventRepository(session).get(event_id) is None:
                raise NotFoundError("Event", event_id)

            tx = self.record(
                session,
                user_id=user_id,
                points=points,
                reason=resolved,
                breakdown=breakdown,
                description=description or f"Manual {resolved.value} adjustment",
                event_id=event_id,
            )
            entry = to_ledger_entry(tx)

        logger.info(
            f"Adjusted user {user_id} by {points} points (reason={resolved.value}, tx={entry.id})"
        )
        return entry
