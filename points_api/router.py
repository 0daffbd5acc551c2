"""
FastAPI Routers for Points and Settlement Admin Endpoints.

Provides REST API for:
- User points summary, ledger history, per-event points, leaderboard
- Admin settlement: sweep, single prediction, whole event
- Admin event completion, simulation, status transitions
- Admin manual point adjustments and needs-attention listing

Identity and privilege come from request headers through
dependencies a host application may override:
- X-User-Id      -> get_current_user_id
- X-User-Role    -> require_admin (must be ADMIN)
"""

import logging
from dataclasses import asdict
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, status
from sqlalchemy.orm import sessionmaker

from core.exceptions import (
    InvalidAdjustmentError,
    InvalidCursorError,
    InvalidScoreError,
    InvalidStateError,
    NotFoundError,
    PredictionShapeError,
    ScoringError,
    SettlementException,
    UnresolvableOutcomeError,
)
from database.engine import get_session_factory
from points_api.schemas import (
    AdjustPointsRequest,
    BreakdownSchema,
    CompleteEventRequest,
    CompleteEventResponse,
    EventPointsResponse,
    EventSettlementResponse,
    EventStatusResponse,
    HistoryResponse,
    LeaderboardEntryResponse,
    LeaderboardResponse,
    LedgerEntryResponse,
    LockPredictionsResponse,
    NeedsAttentionResponse,
    PointsSummaryResponse,
    SettlePredictionResponse,
    StaleEventResponse,
    SweepReportResponse,
    TransactionReasonEnum,
    UpdateEventStatusRequest,
)
from settlement import (
    AggregateReader,
    CompletionMonitor,
    LedgerService,
    SettlementEngine,
)

logger = logging.getLogger(__name__)

admin_router = APIRouter(prefix="/admin", tags=["Settlement Admin"])
points_router = APIRouter(prefix="/points", tags=["Points"])

ADMIN_ROLE = "ADMIN"


# =============================================================
# HELPER: Identity dependencies
# =============================================================

def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id


def require_admin(x_user_role: Optional[str] = Header(None)) -> str:
    if (x_user_role or "").upper() != ADMIN_ROLE:
        raise HTTPException(status_code=403, detail="Admin role required")
    return ADMIN_ROLE


# =============================================================
# HELPER: Get service instances
# =============================================================

def get_db_factory() -> sessionmaker:
    return get_session_factory()


def get_settlement_engine(factory: sessionmaker = Depends(get_db_factory)) -> SettlementEngine:
    return SettlementEngine(session_factory=factory)


def get_completion_monitor(
    factory: sessionmaker = Depends(get_db_factory),
    engine: SettlementEngine = Depends(get_settlement_engine),
) -> CompletionMonitor:
    return CompletionMonitor(session_factory=factory, engine=engine)


def get_aggregate_reader(factory: sessionmaker = Depends(get_db_factory)) -> AggregateReader:
    return AggregateReader(session_factory=factory)


def get_ledger_service(factory: sessionmaker = Depends(get_db_factory)) -> LedgerService:
    return LedgerService(session_factory=factory)


# =============================================================
# HELPER: Exception mapping
# =============================================================

_STATUS_BY_ERROR = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidStateError, status.HTTP_409_CONFLICT),
    (UnresolvableOutcomeError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (InvalidScoreError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (PredictionShapeError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ScoringError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (InvalidAdjustmentError, status.HTTP_400_BAD_REQUEST),
    (InvalidCursorError, status.HTTP_400_BAD_REQUEST),
]


def to_http_exception(error: SettlementException) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=error.message)
    logger.error(error.to_log_format())
    return HTTPException(status_code=500, detail=error.message)


def _breakdowns(items) -> List[BreakdownSchema]:
    return [BreakdownSchema.from_breakdown(b) for b in items]


# =============================================================
# POINTS ENDPOINTS
# =============================================================

@points_router.get("/summary", response_model=PointsSummaryResponse)
def get_points_summary(
    user_id: str = Depends(get_current_user_id),
    reader: AggregateReader = Depends(get_aggregate_reader),
):
    """Totals, trailing week/month, accuracy and streaks for the caller."""
    return PointsSummaryResponse.model_validate(asdict(reader.summary(user_id)))


@points_router.get("/history", response_model=HistoryResponse)
def get_points_history(
    cursor: Optional[str] = Query(None, description="next_cursor from the previous page"),
    limit: int = Query(20, description="Page size, clamped to 1..100"),
    reason: Optional[TransactionReasonEnum] = Query(None),
    event_id: Optional[str] = Query(None),
    user_id: str = Depends(get_current_user_id),
    reader: AggregateReader = Depends(get_aggregate_reader),
):
    """Ledger transactions newest first, keyset paginated."""
    try:
        page = reader.history(
            user_id,
            cursor=cursor,
            limit=limit,
            reason=reason.value if reason else None,
            event_id=event_id,
        )
    except SettlementException as e:
        raise to_http_exception(e)

    transactions = []
    for entry in page.transactions:
        data = asdict(entry)
        data["reason"] = entry.reason.value
        transactions.append(LedgerEntryResponse.model_validate(data))

    return HistoryResponse(
        transactions=transactions,
        has_more=page.has_more,
        next_cursor=page.next_cursor,
    )


@points_router.get("/events/{event_id}", response_model=EventPointsResponse)
def get_event_points(
    event_id: str,
    user_id: str = Depends(get_current_user_id),
    reader: AggregateReader = Depends(get_aggregate_reader),
):
    """Points the caller earned on one event."""
    summary = reader.event_summary(event_id, user_id)
    if summary is None:
        raise HTTPException(status_code=404, detail=f"No points for event {event_id}")
    return EventPointsResponse.model_validate(asdict(summary))


@points_router.get("/leaderboard", response_model=LeaderboardResponse)
def get_leaderboard(
    limit: int = Query(50, ge=1, le=500),
    _: str = Depends(get_current_user_id),
    reader: AggregateReader = Depends(get_aggregate_reader),
):
    """Users sorted by total points."""
    entries = reader.leaderboard(limit=limit)
    return LeaderboardResponse(
        entries=[
            LeaderboardEntryResponse(rank=i, **asdict(entry))
            for i, entry in enumerate(entries, start=1)
        ]
    )


# =============================================================
# ADMIN: SETTLEMENT ENDPOINTS
# =============================================================

@admin_router.post("/scoring/process-completed", response_model=SweepReportResponse)
def process_completed_events(
    max_events: Optional[int] = Query(None, ge=1, description="Cap events handled this run"),
    _: str = Depends(require_admin),
    monitor: CompletionMonitor = Depends(get_completion_monitor),
):
    """Settle every completed event that still has unsettled predictions."""
    report = monitor.process_completed_events(max_events=max_events)
    return SweepReportResponse.model_validate(asdict(report))


@admin_router.post("/scoring/predictions/{prediction_id}", response_model=SettlePredictionResponse)
def settle_prediction(
    prediction_id: str,
    _: str = Depends(require_admin),
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    """Settle one prediction. settled=false when nothing was written."""
    try:
        breakdown = engine.settle_prediction(prediction_id)
    except SettlementException as e:
        raise to_http_exception(e)

    return SettlePredictionResponse(
        prediction_id=prediction_id,
        settled=breakdown is not None,
        breakdown=BreakdownSchema.from_breakdown(breakdown) if breakdown else None,
    )


@admin_router.post("/scoring/events/{event_id}", response_model=EventSettlementResponse)
def settle_event(
    event_id: str,
    _: str = Depends(require_admin),
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    """Settle every unsettled prediction of one event."""
    try:
        result = engine.settle_event_detailed(event_id)
    except SettlementException as e:
        raise to_http_exception(e)

    return EventSettlementResponse(
        event_id=event_id,
        settled_count=result.settled_count,
        failed_count=result.failed_count,
        skipped_count=len(result.skipped),
        breakdowns=_breakdowns(result.breakdowns),
        failed=result.failed,
    )


# =============================================================
# ADMIN: EVENT LIFECYCLE ENDPOINTS
# =============================================================

@admin_router.post("/events/{event_id}/complete", response_model=CompleteEventResponse)
def complete_event(
    event_id: str,
    body: CompleteEventRequest,
    _: str = Depends(require_admin),
    monitor: CompletionMonitor = Depends(get_completion_monitor),
):
    """Record the final score and settle the event."""
    try:
        breakdowns = monitor.complete_event(event_id, body.home_score, body.away_score)
    except SettlementException as e:
        raise to_http_exception(e)

    return CompleteEventResponse(
        event_id=event_id,
        home_score=body.home_score,
        away_score=body.away_score,
        settled_count=len(breakdowns),
        breakdowns=_breakdowns(breakdowns),
    )


@admin_router.post("/events/{event_id}/simulate-completion", response_model=CompleteEventResponse)
def simulate_completion(
    event_id: str,
    _: str = Depends(require_admin),
    monitor: CompletionMonitor = Depends(get_completion_monitor),
):
    """Complete an event with random scores (demo/test only)."""
    try:
        simulated = monitor.simulate_completion(event_id)
    except SettlementException as e:
        raise to_http_exception(e)

    return CompleteEventResponse(
        event_id=event_id,
        home_score=simulated.home_score,
        away_score=simulated.away_score,
        settled_count=len(simulated.breakdowns),
        breakdowns=_breakdowns(simulated.breakdowns),
    )


@admin_router.post("/events/{event_id}/status", response_model=EventStatusResponse)
def update_event_status(
    event_id: str,
    body: UpdateEventStatusRequest,
    _: str = Depends(require_admin),
    monitor: CompletionMonitor = Depends(get_completion_monitor),
):
    """Move an event forward through SCHEDULED -> LIVE -> COMPLETED."""
    try:
        breakdowns = monitor.update_event_status(
            event_id, body.status.value, body.home_score, body.away_score
        )
    except SettlementException as e:
        raise to_http_exception(e)

    return EventStatusResponse(
        event_id=event_id,
        status=body.status,
        settled_count=len(breakdowns),
        breakdowns=_breakdowns(breakdowns),
    )


@admin_router.get("/events/needing-updates", response_model=NeedsAttentionResponse)
def get_events_needing_updates(
    _: str = Depends(require_admin),
    monitor: CompletionMonitor = Depends(get_completion_monitor),
):
    """In-progress events long past their start time."""
    stale = monitor.find_stale_events()
    return NeedsAttentionResponse(
        grace_hours=monitor.config.monitor.grace_hours,
        count=len(stale),
        events=[StaleEventResponse.from_stale(s) for s in stale],
    )


@admin_router.post("/predictions/lock", response_model=LockPredictionsResponse)
def lock_started_predictions(
    _: str = Depends(require_admin),
    monitor: CompletionMonitor = Depends(get_completion_monitor),
):
    """Lock predictions of events that have started."""
    return LockPredictionsResponse(locked=monitor.lock_started_predictions())


# =============================================================
# ADMIN: LEDGER ENDPOINTS
# =============================================================

@admin_router.post(
    "/points/adjust",
    response_model=LedgerEntryResponse,
    status_code=status.HTTP_201_CREATED,
)
def adjust_points(
    body: AdjustPointsRequest,
    _: str = Depends(require_admin),
    ledger: LedgerService = Depends(get_ledger_service),
):
    """Post a manual bonus, lesson or penalty adjustment."""
    try:
        entry = ledger.adjust_points(
            user_id=body.user_id,
            points=body.points,
            reason=body.reason.value if body.reason else None,
            description=body.description,
            event_id=body.event_id,
        )
    except SettlementException as e:
        raise to_http_exception(e)

    data = asdict(entry)
    data["reason"] = entry.reason.value
    return LedgerEntryResponse.model_validate(data)


# =============================================================
# APPLICATION FACTORY
# =============================================================

def create_app() -> FastAPI:
    """FastAPI application exposing both routers."""
    app = FastAPI(title="Points Settlement API", version="1.0.0")
    app.include_router(points_router)
    app.include_router(admin_router)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app
