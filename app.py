#!/usr/bin/env python3
"""
Points Settlement - Main Application Entry Point.

============================================================
SINGLE ENTRYPOINT
============================================================
One executable for every runtime mode of the settlement
subsystem.

- sweep     settle completed events (once, or in a loop)
- stale     list in-progress events that need attention
- serve     run the FastAPI points/admin API
- init-db   create tables and verify the schema

Safe to run several sweep processes at once: settlement is
gated per prediction in the database.

============================================================
USAGE
============================================================
    python app.py sweep --once
    python app.py sweep --interval 300 --max-events 100
    python app.py stale
    python app.py serve --port 8000
    python app.py init-db

With PM2:
    pm2 start app.py --interpreter python --name settlement-sweep -- sweep

============================================================
"""

import argparse
import logging
import os
import sys
import time
from dataclasses import replace
from typing import List, Optional

from core.logging_config import setup_logging
from database.engine import configure_database, get_table_row_counts, initialize_database
from settlement import CompletionMonitor, SettlementConfig


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="points-settlement",
        description="Prediction settlement and points ledger service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  sweep     - Settle every completed event with unsettled predictions
  stale     - List SCHEDULED/LIVE events past the grace window
  serve     - Run the HTTP API (points + admin routers)
  init-db   - Create tables and print row counts

Examples:
  %(prog)s sweep --once                 # One sweep, then exit
  %(prog)s sweep --interval 60          # Sweep every minute
  %(prog)s stale --grace-hours 3
  %(prog)s serve --host 0.0.0.0 --port 8000
        """
    )

    # --------------------------------------------------------
    # Shared Options
    # --------------------------------------------------------
    parser.add_argument(
        "--database-url",
        type=str,
        metavar="URL",
        help="Database URL (default: DATABASE_URL_SYNC / DATABASE_URL env)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Logging level (default: LOG_LEVEL env, then INFO)",
    )
    parser.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        default=None,
        help="Logging format (default: LOG_FORMAT env, then text)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # --------------------------------------------------------
    # sweep
    # --------------------------------------------------------
    sweep = subparsers.add_parser("sweep", help="Settle completed events")
    sweep.add_argument(
        "--once",
        action="store_true",
        help="Run a single sweep and exit (no loop)",
    )
    sweep.add_argument(
        "--interval",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Delay between sweeps (default: SWEEP_INTERVAL_SECONDS env, then 300)",
    )
    sweep.add_argument(
        "--max-events",
        type=int,
        default=None,
        help="Cap events handled per sweep (default: unlimited)",
    )

    # --------------------------------------------------------
    # stale
    # --------------------------------------------------------
    stale = subparsers.add_parser("stale", help="List events needing attention")
    stale.add_argument(
        "--grace-hours",
        type=float,
        default=None,
        help="Grace window in hours (default: STALE_GRACE_HOURS env, then 2)",
    )

    # --------------------------------------------------------
    # serve
    # --------------------------------------------------------
    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", type=str, default=os.getenv("API_HOST", "0.0.0.0"))
    serve.add_argument("--port", type=int, default=int(os.getenv("PORT", "8000")))

    # --------------------------------------------------------
    # init-db
    # --------------------------------------------------------
    subparsers.add_parser("init-db", help="Create tables and verify schema")

    return parser


# ============================================================
# CLI VALIDATION
# ============================================================

def validate_args(args: argparse.Namespace) -> List[str]:
    """Return a list of validation errors (empty when valid)."""
    errors = []

    if args.command == "sweep":
        if args.interval is not None and args.interval <= 0:
            errors.append("--interval must be positive")
        if args.max_events is not None and args.max_events < 1:
            errors.append("--max-events must be at least 1")

    if args.command == "stale" and args.grace_hours is not None and args.grace_hours < 0:
        errors.append("--grace-hours must be non-negative")

    return errors


def build_config(args: argparse.Namespace) -> SettlementConfig:
    """Environment config with CLI overrides applied."""
    config = SettlementConfig.from_env()
    monitor = config.monitor

    if getattr(args, "interval", None) is not None:
        monitor = replace(monitor, sweep_interval_seconds=args.interval)
    if getattr(args, "max_events", None) is not None:
        monitor = replace(monitor, sweep_max_events=args.max_events)
    if getattr(args, "grace_hours", None) is not None:
        monitor = replace(monitor, grace_hours=args.grace_hours)

    return replace(config, monitor=monitor)


# ============================================================
# COMMANDS
# ============================================================

def run_sweep(monitor: CompletionMonitor, once: bool, interval: float) -> int:
    logger = logging.getLogger(__name__)

    if once:
        report = monitor.process_completed_events()
        print(
            f"Sweep: {report.events_processed}/{report.events_found} events, "
            f"{report.predictions_settled} settled, {report.predictions_failed} failed"
        )
        return 0 if not (report.events_failed or report.events_unresolvable) else 1

    logger.info(f"Starting sweep loop every {interval:.0f}s (press Ctrl+C to stop)...")
    try:
        while True:
            try:
                monitor.process_completed_events()
            except Exception as e:
                logger.error(f"Sweep cycle failed: {e}", exc_info=True)
            time.sleep(interval)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130


def run_stale(monitor: CompletionMonitor) -> int:
    stale = monitor.find_stale_events()
    grace = monitor.config.monitor.grace_hours

    print(f"\nEvents needing attention (in progress > {grace}h past start)")
    print("=" * 60)
    if not stale:
        print("  none")
    for event in stale:
        print(
            f"  {event.event_id}  {event.away_team}@{event.home_team}  "
            f"{event.status.value:9s}  started {event.start_time.isoformat()}  "
            f"overdue {event.overdue_by}  predictions={event.prediction_count}"
        )
    print()
    return 0


def run_serve(host: str, port: int) -> int:
    import uvicorn

    from points_api import create_app

    logging.getLogger(__name__).info(f"Starting points API on {host}:{port}")
    uvicorn.run(create_app(), host=host, port=port, log_level="info", access_log=True)
    return 0


def run_init_db() -> int:
    initialize_database()
    for table, count in get_table_row_counts().items():
        print(f"  {table:24s} {count}")
    return 0


# ============================================================
# MAIN FUNCTION
# ============================================================

def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    errors = validate_args(args)
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return 1

    setup_logging(args.log_level, args.log_format)
    logger = logging.getLogger(__name__)

    try:
        factory = configure_database(args.database_url)

        if args.command == "init-db":
            return run_init_db()
        if args.command == "serve":
            return run_serve(args.host, args.port)

        config = build_config(args)
        logger.debug(f"Settlement config: {config.to_dict()}")
        monitor = CompletionMonitor(session_factory=factory, config=config)

        if args.command == "sweep":
            return run_sweep(monitor, args.once, config.monitor.sweep_interval_seconds)
        return run_stale(monitor)

    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1


# ============================================================
# ENTRY POINT
# ============================================================

if __name__ == "__main__":
    sys.exit(main())
