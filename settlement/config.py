"""
Settlement - Configuration.

============================================================
PURPOSE
============================================================
Defines all configuration dataclasses and constants for the
settlement subsystem.

All defaults are documented next to the field.
All configurations are immutable.

============================================================
ENVIRONMENT OVERRIDES
============================================================
SettlementConfig.from_env() reads:

- STALE_GRACE_HOURS        grace window for needs-attention listing
- SWEEP_INTERVAL_SECONDS   delay between sweeps in loop mode
- SWEEP_MAX_EVENTS         per-sweep event limit (empty = unlimited)
- THREE_POINT_STAT_TYPE    stat_type marker for made three-pointers

============================================================
"""

import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from core.exceptions import ConfigurationError


# ============================================================
# SCORING CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class ScoringConfig:
    """
    Point ceilings for the default linear scoring function.

    accuracy_cap is the denominator of the accuracy percentage,
    not a per-prediction ceiling.
    """

    accuracy_cap: int = 200                   # accuracy = total / cap * 100

    # GAME_WINNER
    winner_points: int = 10                   # correct side

    # FINAL_SCORE
    final_score_max_points: int = 50          # total ceiling
    final_score_closeness_points: int = 40    # minus absolute error sum

    # TEAM_THREES
    team_threes_max_points: int = 25          # minus absolute error sum

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accuracy_cap": self.accuracy_cap,
            "winner_points": self.winner_points,
            "final_score_max_points": self.final_score_max_points,
            "final_score_closeness_points": self.final_score_closeness_points,
            "team_threes_max_points": self.team_threes_max_points,
        }


# ============================================================
# OUTCOME CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class OutcomeConfig:
    """Raw statistics feed conventions."""

    three_point_stat_type: str = "3pm"        # matched case-insensitively

    def to_dict(self) -> Dict[str, Any]:
        return {"three_point_stat_type": self.three_point_stat_type}


# ============================================================
# MONITOR CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class MonitorConfig:
    """
    Completion monitor settings.

    Stale: SCHEDULED/LIVE and started more than grace_hours ago.
    Simulated scores are drawn from an inclusive range.
    """

    grace_hours: float = 2.0
    simulated_score_min: int = 90
    simulated_score_max: int = 119
    sweep_interval_seconds: float = 300.0     # loop mode only
    sweep_max_events: Optional[int] = None    # None = no limit

    @property
    def grace_window(self) -> timedelta:
        return timedelta(hours=self.grace_hours)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "grace_hours": self.grace_hours,
            "simulated_score_min": self.simulated_score_min,
            "simulated_score_max": self.simulated_score_max,
            "sweep_interval_seconds": self.sweep_interval_seconds,
            "sweep_max_events": self.sweep_max_events,
        }


# ============================================================
# AGGREGATE CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class AggregateConfig:
    """Read-side windows and page sizes."""

    week_days: int = 7
    month_days: int = 30
    history_default_limit: int = 20
    history_max_limit: int = 100
    leaderboard_default_limit: int = 50

    def clamp_limit(self, limit: Optional[int]) -> int:
        if limit is None:
            return self.history_default_limit
        return max(1, min(int(limit), self.history_max_limit))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "week_days": self.week_days,
            "month_days": self.month_days,
            "history_default_limit": self.history_default_limit,
            "history_max_limit": self.history_max_limit,
            "leaderboard_default_limit": self.leaderboard_default_limit,
        }


# ============================================================
# MASTER CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class SettlementConfig:
    """
    Master configuration for the settlement subsystem.

    Aggregates all component configs.
    """

    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    outcome: OutcomeConfig = field(default_factory=OutcomeConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    aggregates: AggregateConfig = field(default_factory=AggregateConfig)

    version: str = "1.0.0"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scoring": self.scoring.to_dict(),
            "outcome": self.outcome.to_dict(),
            "monitor": self.monitor.to_dict(),
            "aggregates": self.aggregates.to_dict(),
            "version": self.version,
        }

    @classmethod
    def from_env(cls) -> "SettlementConfig":
        """
        Build configuration from environment variables.

        Unset variables keep their defaults.

        Raises:
            ConfigurationError: if a variable is set but unparseable
        """
        load_dotenv()

        defaults = MonitorConfig()
        monitor = MonitorConfig(
            grace_hours=_env_number("STALE_GRACE_HOURS", defaults.grace_hours, float),
            sweep_interval_seconds=_env_number(
                "SWEEP_INTERVAL_SECONDS", defaults.sweep_interval_seconds, float
            ),
            sweep_max_events=_env_number("SWEEP_MAX_EVENTS", defaults.sweep_max_events, int),
        )
        outcome = OutcomeConfig(
            three_point_stat_type=os.getenv(
                "THREE_POINT_STAT_TYPE", OutcomeConfig().three_point_stat_type
            ),
        )
        return cls(monitor=monitor, outcome=outcome)


def _env_number(key: str, default, cast):
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigurationError(key, raw, f"expected {cast.__name__}")
    if value < 0:
        raise ConfigurationError(key, raw, "must be non-negative")
    return value


# ============================================================
# DEFAULT CONFIGURATION
# ============================================================


def get_default_config() -> SettlementConfig:
    """Return the default settlement configuration."""
    return SettlementConfig()
