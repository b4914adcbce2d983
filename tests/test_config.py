"""Tests for configuration loading and logging helpers."""
import logging
import pytest
import yaml
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from config import load_config, _deep_merge, _validate_config
from utils.formatters import format_duration, format_severity, format_timestamp, time_ago
from utils.logger import DatabaseLogHandler


class TestConfig:
    def test_defaults(self):
        config = load_config()
        assert config["monitoring"]["correlation_interval"] == 60
        assert config["alerts"]["max_alerts_per_window"]["critical"] == 3
        assert config["alerts"]["default_channels"] == ["email", "log"]
        assert [t["metric"] for t in config["alerts"]["thresholds"]] == ["queue_size", "error_rate", "memory_usage"]

    def test_override_file(self, tmp_path):
        path = tmp_path / "override.yaml"
        path.write_text(yaml.safe_dump({"alerts": {"dedup_window_minutes": 5}}))
        config = load_config(str(path))
        assert config["alerts"]["dedup_window_minutes"] == 5
        assert config["alerts"]["throttle_window_minutes"] == 15

    def test_env_overrides(self):
        with patch.dict("os.environ", {
            "PMONITOR_DB_PATH": "/tmp/x.db",
            "PMONITOR_CORRELATION_INTERVAL": "120",
            "PMONITOR_WEBHOOK_URL": "https://hooks.example.com",
        }):
            config = load_config()
        assert config["database"]["path"] == "/tmp/x.db"
        assert config["monitoring"]["correlation_interval"] == 120
        assert config["webhook"]["url"] == "https://hooks.example.com"

    def test_deep_merge(self):
        merged = _deep_merge({"a": {"b": 1, "c": 2}}, {"a": {"c": 3}})
        assert merged == {"a": {"b": 1, "c": 3}}

    @pytest.mark.parametrize("config", [
        {"alerts": {}, "database": {}, "logging": {}},
        {"monitoring": {"correlation_interval": 0}, "alerts": {}, "database": {}, "logging": {}},
        {"monitoring": {"history_size": -1}, "alerts": {}, "database": {}, "logging": {}},
        {"monitoring": {}, "alerts": {"throttle_window_minutes": 0}, "database": {}, "logging": {}},
        {"monitoring": {}, "alerts": {"thresholds": [{"metric": "queue_size", "warning": 100}]},
         "database": {}, "logging": {}},
        {"monitoring": {}, "alerts": {"thresholds": [{"metric": "queue_size", "warning": 100, "critical": 50}]},
         "database": {}, "logging": {}},
    ])
    def test_validation(self, config):
        with pytest.raises(ValueError):
            _validate_config(config)


class TestDatabaseLogHandler:
    def test_persists_records(self, temp_db):
        log = logging.getLogger("pmonitor.test_capture")
        handler = DatabaseLogHandler(temp_db)
        log.addHandler(handler)
        try:
            log.error("Connection refused by upstream")
        finally:
            log.removeHandler(handler)
        now = datetime.now(timezone.utc)
        assert temp_db.count_log_matches("refused", now - timedelta(minutes=1), now + timedelta(seconds=1)) == 1

    def test_ignores_database_logger(self, temp_db):
        handler = DatabaseLogHandler(temp_db, level=logging.DEBUG)
        record = logging.LogRecord("pmonitor.db", logging.ERROR, __file__, 1, "db failure", None, None)
        handler.emit(record)
        now = datetime.now(timezone.utc)
        assert temp_db.count_log_matches("db failure", now - timedelta(minutes=1), now + timedelta(seconds=1)) == 0


class TestFormatters:
    def test_duration(self):
        assert format_duration(850) == "850ms"
        assert format_duration(2500) == "2.5s"
        assert format_duration(90000) == "1m 30s"
        assert format_duration(None) == "N/A"

    def test_severity(self):
        assert format_severity("critical") == "CRITICAL"
        assert format_severity("high", with_color=True) == "[red]HIGH[/red]"

    def test_timestamp(self):
        assert format_timestamp(datetime(2025, 3, 1, 9, 5, 0, tzinfo=timezone.utc)) == "2025-03-01 09:05:00 UTC"
        assert format_timestamp(None) == "N/A"

    def test_time_ago(self):
        now = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert time_ago(now - timedelta(seconds=30), now=now) == "30s ago"
        assert time_ago(now - timedelta(hours=3), now=now) == "3h ago"
        assert time_ago(now - timedelta(days=2), now=now) == "2d ago"
