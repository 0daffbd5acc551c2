"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines all custom exceptions for the settlement subsystem.

- Provides clear exception hierarchy
- Enables specific error handling
- Separates data-quality faults from caller bugs
- Includes context for debugging

============================================================
EXCEPTION HIERARCHY
============================================================
SettlementException (base)
├── ConfigurationError
├── NotFoundError
├── InvalidStateError
├── UnresolvableOutcomeError
├── PredictionShapeError
├── ScoringError
├── InvalidScoreError
├── InvalidAdjustmentError
├── InvalidCursorError
└── LedgerImmutableError

============================================================
"""

from enum import Enum
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# ============================================================
# SEVERITY LEVELS
# ============================================================

class Severity(Enum):
    """Exception severity levels for alerting."""

    LOW = "low"
    """Minor issue, informational."""

    MEDIUM = "medium"
    """Moderate issue, requires attention."""

    HIGH = "high"
    """Serious issue, operator must look at the data."""

    CRITICAL = "critical"
    """Critical issue, ledger integrity at stake."""


# ============================================================
# ERROR CLASSIFICATION
# ============================================================

class ErrorClassification(Enum):
    """Classification of error recoverability."""

    RECOVERABLE = "recoverable"
    """A later sweep may succeed without intervention."""

    CALLER_ERROR = "caller_error"
    """The caller asked for something invalid."""

    DATA_QUALITY = "data_quality"
    """Upstream data is wrong, requires operator correction."""

    NON_RECOVERABLE = "non_recoverable"
    """Permanent error, requires intervention."""


# ============================================================
# BASE EXCEPTION
# ============================================================

class SettlementException(Exception):
    """
    Base exception for all settlement subsystem errors.

    All exceptions carry:
    - severity: for alerting
    - context: for debugging
    - classification: for error handling decisions
    - timestamp: when the error occurred
    """

    default_severity: Severity = Severity.MEDIUM
    default_classification: ErrorClassification = ErrorClassification.RECOVERABLE

    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        classification: Optional[ErrorClassification] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)

        self.message = message
        self.severity = severity or self.default_severity
        self.context = context or {}
        self.classification = classification or self.default_classification
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    @property
    def is_recoverable(self) -> bool:
        """Check if a later sweep could succeed."""
        return self.classification == ErrorClassification.RECOVERABLE

    @property
    def requires_operator(self) -> bool:
        """Check if error needs a human to correct data."""
        return self.classification in (
            ErrorClassification.DATA_QUALITY,
            ErrorClassification.NON_RECOVERABLE,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging/storage."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.value,
            "classification": self.classification.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }

    def to_log_format(self) -> str:
        """Format exception for structured logging."""
        ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
        base = f"[{self.severity.value.upper()}] {type(self).__name__}: {self.message}"
        return f"{base} | {ctx_str}" if ctx_str else base


# ============================================================
# CONFIGURATION ERRORS
# ============================================================

class ConfigurationError(SettlementException):
    """Error in configuration."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.NON_RECOVERABLE

    def __init__(self, key: str, value: Any, reason: str):
        super().__init__(
            message=f"Invalid configuration for {key}: {reason}",
            context={"config_key": key, "actual_value": str(value)[:100]},
        )


# ============================================================
# LOOKUP / STATE ERRORS
# ============================================================

class NotFoundError(SettlementException):
    """Unknown prediction, event or transaction id."""

    default_severity = Severity.LOW
    default_classification = ErrorClassification.CALLER_ERROR

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(
            message=f"{entity} not found: {entity_id}",
            context={"entity": entity, "entity_id": str(entity_id)},
        )
        self.entity = entity
        self.entity_id = entity_id


class InvalidStateError(SettlementException):
    """
    Operation not allowed in the entity's current state.

    Raised for completing an already-completed event, simulating
    completion of a completed event, or moving an event backwards
    through its lifecycle.
    """

    default_severity = Severity.MEDIUM
    default_classification = ErrorClassification.CALLER_ERROR

    def __init__(
        self,
        message: str,
        entity_id: Optional[Any] = None,
        current_state: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if entity_id is not None:
            context["entity_id"] = str(entity_id)
        if current_state:
            context["current_state"] = current_state

        super().__init__(message, context=context, **kwargs)


class UnresolvableOutcomeError(SettlementException):
    """
    Final scores do not determine a winner.

    Ties are not a valid result in the sport. This is a data-quality
    fault: the event must be corrected by an operator, never settled
    by guessing a side.
    """

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.DATA_QUALITY

    def __init__(self, event_id: Any, home_score: int, away_score: int):
        super().__init__(
            message=f"Event {event_id} has equal final scores ({home_score}-{away_score})",
            context={
                "event_id": str(event_id),
                "home_score": home_score,
                "away_score": away_score,
            },
        )
        self.event_id = event_id


# ============================================================
# SCORING ERRORS
# ============================================================

class PredictionShapeError(SettlementException):
    """Stored prediction columns do not form a valid prediction shape."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.DATA_QUALITY

    def __init__(self, prediction_id: Any, reason: str):
        super().__init__(
            message=f"Prediction {prediction_id} is malformed: {reason}",
            context={"prediction_id": str(prediction_id), "reason": reason},
        )


class ScoringError(SettlementException):
    """The scoring function failed or returned an invalid breakdown."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.NON_RECOVERABLE


class InvalidScoreError(SettlementException):
    """Final scores supplied by an operator are invalid."""

    default_severity = Severity.LOW
    default_classification = ErrorClassification.CALLER_ERROR

    def __init__(self, home_score: Any, away_score: Any, reason: str):
        super().__init__(
            message=f"Invalid final score {home_score}-{away_score}: {reason}",
            context={"home_score": str(home_score), "away_score": str(away_score)},
        )


# ============================================================
# LEDGER ERRORS
# ============================================================

class InvalidCursorError(SettlementException):
    """History cursor cannot be parsed."""

    default_severity = Severity.LOW
    default_classification = ErrorClassification.CALLER_ERROR

    def __init__(self, cursor: str):
        super().__init__(
            message=f"Invalid history cursor: {cursor!r}",
            context={"cursor": str(cursor)[:100]},
        )


class InvalidAdjustmentError(SettlementException):
    """Manual point adjustment rejected."""

    default_severity = Severity.LOW
    default_classification = ErrorClassification.CALLER_ERROR


class LedgerImmutableError(SettlementException):
    """Attempt to update or delete a ledger transaction."""

    default_severity = Severity.CRITICAL
    default_classification = ErrorClassification.NON_RECOVERABLE

    def __init__(self, transaction_id: Any, operation: str):
        super().__init__(
            message=f"Ledger transaction {transaction_id} is immutable ({operation} refused)",
            context={"transaction_id": str(transaction_id), "operation": operation},
        )


# ============================================================
# EXPORTS
# ============================================================

__all__ = [
    "Severity",
    "ErrorClassification",
    "SettlementException",
    "ConfigurationError",
    "NotFoundError",
    "InvalidStateError",
    "UnresolvableOutcomeError",
    "PredictionShapeError",
    "ScoringError",
    "InvalidScoreError",
    "InvalidAdjustmentError",
    "InvalidCursorError",
    "LedgerImmutableError",
]
