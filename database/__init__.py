"""
Database Package Initialization.

============================================================
SETTLEMENT PERSISTENCE LAYER
============================================================

This package provides database persistence for the points
settlement pipeline. Writes are explicit transactions with
commit/rollback; the ledger table is append-only.

REQUIRED:
- Every settlement write happens inside transaction_scope()
- Every failure raises hard exceptions
- No cached point totals anywhere

============================================================
"""

# Core engine and session management
from .engine import (
    # Declarative base
    Base,

    # Engine creation
    create_database_engine,
    configure_database,
    get_engine,

    # Session management
    get_session_factory,
    get_db_session,
    transaction_scope,

    # Database initialization
    initialize_database,
    create_all_tables,
    verify_required_tables,
    get_table_row_counts,
    REQUIRED_TABLES,

    # Exceptions
    DatabasePersistenceError,
    DatabaseConnectionError,
    DatabaseInitializationError,
)

# ORM Models
from .models import (
    EventStatus,
    PredictionType,
    Side,
    TransactionReason,
    Event,
    EventStatistic,
    Prediction,
    PointsTransaction,
)

__all__ = [
    "Base",
    "create_database_engine",
    "configure_database",
    "get_engine",
    "get_session_factory",
    "get_db_session",
    "transaction_scope",
    "initialize_database",
    "create_all_tables",
    "verify_required_tables",
    "get_table_row_counts",
    "REQUIRED_TABLES",
    "DatabasePersistenceError",
    "DatabaseConnectionError",
    "DatabaseInitializationError",
    "EventStatus",
    "PredictionType",
    "Side",
    "TransactionReason",
    "Event",
    "EventStatistic",
    "Prediction",
    "PointsTransaction",
]
