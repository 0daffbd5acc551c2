"""
Tests for the settlement exception hierarchy.
"""

from core.exceptions import (
    ErrorClassification,
    InvalidStateError,
    LedgerImmutableError,
    NotFoundError,
    ScoringError,
    Severity,
    SettlementException,
    UnresolvableOutcomeError,
)


class TestClassification:
    """Severity and classification drive operator handling."""

    def test_caller_errors_are_not_recoverable(self):
        error = NotFoundError("Event", "evt-1")
        assert error.severity is Severity.LOW
        assert error.classification is ErrorClassification.CALLER_ERROR
        assert not error.is_recoverable
        assert not error.requires_operator

    def test_tie_needs_operator(self):
        error = UnresolvableOutcomeError("evt-1", 100, 100)
        assert error.severity is Severity.HIGH
        assert error.requires_operator
        assert error.context == {"event_id": "evt-1", "home_score": 100, "away_score": 100}

    def test_ledger_mutation_is_critical(self):
        error = LedgerImmutableError(7, "delete")
        assert error.severity is Severity.CRITICAL
        assert error.requires_operator

    def test_base_defaults_recoverable(self):
        assert SettlementException("transient").is_recoverable


class TestSerialization:
    """to_dict() and to_log_format()"""

    def test_to_dict_carries_cause(self):
        cause = RuntimeError("boom")
        error = ScoringError("scoring failed", context={"prediction_id": "p-1"}, cause=cause)

        data = error.to_dict()

        assert data["type"] == "ScoringError"
        assert data["severity"] == "high"
        assert data["classification"] == "non_recoverable"
        assert data["cause"] == "boom"
        assert data["context"]["cause_type"] == "RuntimeError"
        assert data["context"]["prediction_id"] == "p-1"

    def test_log_format(self):
        error = InvalidStateError("Event evt-1 is already completed", entity_id="evt-1", current_state="COMPLETED")
        line = error.to_log_format()
        assert line.startswith("[MEDIUM] InvalidStateError: Event evt-1 is already completed")
        assert "current_state=COMPLETED" in line
