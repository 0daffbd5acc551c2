"""
Tests for configuration loading and CLI argument handling.
"""

import logging

import pytest

from app import build_config, create_parser, main, run_sweep, validate_args
from core.exceptions import ConfigurationError
from database.engine import DatabasePersistenceError, get_engine, get_table_row_counts
from settlement.config import AggregateConfig, SettlementConfig


ENV_KEYS = ("STALE_GRACE_HOURS", "SWEEP_INTERVAL_SECONDS", "SWEEP_MAX_EVENTS", "THREE_POINT_STAT_TYPE")


@pytest.fixture
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


class FlakyMonitor:
    """Fails its first sweep, succeeds on the second, then stops the loop."""

    def __init__(self):
        self.calls = 0

    def process_completed_events(self):
        self.calls += 1
        if self.calls == 1:
            raise DatabasePersistenceError("connection dropped")
        if self.calls == 3:
            raise KeyboardInterrupt
        return None


# =============================================================
# TEST: Environment
# =============================================================

class TestFromEnv:
    """SettlementConfig.from_env()"""

    def test_defaults(self, clean_env):
        config = SettlementConfig.from_env()
        assert config.monitor.grace_hours == 2.0
        assert config.monitor.sweep_max_events is None
        assert config.outcome.three_point_stat_type == "3pm"
        assert config.scoring.accuracy_cap == 200
        assert config.to_dict()["monitor"]["grace_hours"] == 2.0

    def test_overrides(self, clean_env):
        clean_env.setenv("STALE_GRACE_HOURS", "3.5")
        clean_env.setenv("SWEEP_MAX_EVENTS", "25")
        clean_env.setenv("THREE_POINT_STAT_TYPE", "fg3m")

        config = SettlementConfig.from_env()

        assert config.monitor.grace_hours == 3.5
        assert config.monitor.sweep_max_events == 25
        assert config.outcome.three_point_stat_type == "fg3m"

    @pytest.mark.parametrize("key,value", [
        ("STALE_GRACE_HOURS", "two"),
        ("SWEEP_MAX_EVENTS", "1.5"),
        ("SWEEP_INTERVAL_SECONDS", "-10"),
    ])
    def test_invalid_values(self, clean_env, key, value):
        clean_env.setenv(key, value)
        with pytest.raises(ConfigurationError):
            SettlementConfig.from_env()

    def test_clamp_limit(self):
        config = AggregateConfig()
        assert config.clamp_limit(None) == 20
        assert config.clamp_limit(500) == 100
        assert config.clamp_limit(-3) == 1


# =============================================================
# TEST: CLI
# =============================================================

class TestCli:
    """Argument parsing and validation for app.py."""

    def test_sweep_overrides_config(self, clean_env):
        args = create_parser().parse_args(["sweep", "--once", "--interval", "30", "--max-events", "5"])

        assert validate_args(args) == []
        config = build_config(args)
        assert config.monitor.sweep_interval_seconds == 30
        assert config.monitor.sweep_max_events == 5

    def test_stale_grace_override(self, clean_env):
        args = create_parser().parse_args(["stale", "--grace-hours", "4"])
        assert build_config(args).monitor.grace_hours == 4

    def test_invalid_sweep_arguments(self):
        args = create_parser().parse_args(["sweep", "--interval", "0", "--max-events", "0"])
        assert len(validate_args(args)) == 2

    def test_command_required(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args([])

    def test_init_db_creates_tables(self, tmp_path, capsys):
        url = f"sqlite:///{tmp_path / 'cli.db'}"
        root = logging.getLogger()
        saved = (root.level, list(root.handlers))
        try:
            assert main(["--database-url", url, "--log-level", "WARNING", "init-db"]) == 0
            assert get_table_row_counts() == {
                "events": 0,
                "event_statistics": 0,
                "predictions": 0,
                "points_transactions": 0,
            }
        finally:
            get_engine().dispose()
            root.setLevel(saved[0])
            root.handlers = saved[1]

        assert "points_transactions" in capsys.readouterr().out

    def test_sweep_loop_survives_failed_cycle(self, monkeypatch):
        monkeypatch.setattr("app.time.sleep", lambda seconds: None)
        monitor = FlakyMonitor()

        assert run_sweep(monitor, once=False, interval=5) == 130
        assert monitor.calls == 3
