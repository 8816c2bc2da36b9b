"""Tests for pulsewatch/core/config.py — YAML loading, defaults, default rules."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from pulsewatch.core.config import (
    AlertsConfig,
    BaselineConfig,
    DashboardConfig,
    LoggingConfig,
    MetricsConfig,
    Settings,
    ThresholdRuleConfig,
    get_settings,
    load_settings,
    reset_settings,
)
from pulsewatch.core.types import Severity


@pytest.fixture(autouse=True)
def _clean_settings() -> None:
    """Reset the global settings cache before each test."""
    reset_settings()


class TestDefaults:
    """Settings should have sensible defaults when no YAML is provided."""

    def test_default_metrics_config(self) -> None:
        cfg = MetricsConfig()
        assert cfg.capacity == 1000
        assert cfg.low_interval_secs == 15.0
        assert cfg.high_interval_secs == 5.0

    def test_default_alerts_config(self) -> None:
        cfg = AlertsConfig()
        assert cfg.history_size == 1000
        assert cfg.active_window_secs == 3600.0
        assert cfg.severity_cooldowns_secs[Severity.CRITICAL] == 60.0
        assert cfg.severity_cooldowns_secs[Severity.LOW] == 600.0

    def test_default_rules(self) -> None:
        rules = {r.name: r for r in AlertsConfig().rules}
        assert set(rules) == {
            "high_memory_usage",
            "critical_memory_usage",
            "high_cpu_usage",
            "high_error_rate",
            "critical_error_rate",
            "slow_response_time",
            "database_connection_failure",
            "low_cache_hit_rate",
        }
        assert rules["high_memory_usage"].value == 85.0
        assert rules["high_memory_usage"].severity == Severity.HIGH
        assert rules["database_connection_failure"].op == "is_false"
        assert rules["low_cache_hit_rate"].op == "lt"
        assert rules["critical_error_rate"].value == 0.1
        assert rules["critical_error_rate"].severity == Severity.CRITICAL

    def test_default_baseline_fields(self) -> None:
        cfg = BaselineConfig()
        assert cfg.warmup_samples == 240
        ks = {f.name: f.k for f in cfg.tracked_fields}
        assert ks == {"memory": 3.0, "response_time": 2.0}

    def test_default_dashboard_disabled(self) -> None:
        cfg = DashboardConfig()
        assert cfg.enabled is False
        assert "memory_usage" in cfg.fields

    def test_default_logging_config(self) -> None:
        cfg = LoggingConfig()
        assert cfg.level == "INFO"
        assert cfg.format == "json"
        assert "httpx" in cfg.quiet_loggers

    def test_default_breakers(self) -> None:
        s = Settings()
        breakers = {b.name: b for b in s.breakers}
        assert breakers["database"].failure_threshold == 5
        assert breakers["external_api"].reset_timeout_secs == 120.0


class TestValidation:
    def test_capacity_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            MetricsConfig(capacity=0)

    def test_unknown_rule_op_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ThresholdRuleConfig(name="x", field="a.b", op="between")  # type: ignore[arg-type]

    def test_severity_parsed_from_string(self) -> None:
        rule = ThresholdRuleConfig(name="x", field="a.b", severity="critical")  # type: ignore[arg-type]
        assert rule.severity is Severity.CRITICAL


class TestYamlLoading:
    """Settings should load correctly from YAML files."""

    def test_load_from_yaml(self, tmp_path: Path) -> None:
        config_data = {
            "metrics": {"capacity": 50, "low_interval_secs": 1},
            "alerts": {
                "severity_cooldowns_secs": {"high": 10},
                "rules": [
                    {
                        "name": "hot",
                        "field": "system.temp",
                        "op": "ge",
                        "value": 70,
                        "severity": "high",
                    },
                ],
            },
            "logging": {"level": "DEBUG", "format": "console"},
        }
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(yaml.dump(config_data))

        settings = load_settings(config_file)

        assert settings.metrics.capacity == 50
        assert settings.metrics.low_interval_secs == 1
        assert settings.alerts.severity_cooldowns_secs == {Severity.HIGH: 10}
        assert [r.name for r in settings.alerts.rules] == ["hot"]
        assert settings.logging.level == "DEBUG"
        assert settings.logging.format == "console"

    def test_load_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        settings = load_settings(tmp_path / "nonexistent.yaml")
        assert settings.metrics.capacity == 1000
        assert len(settings.alerts.rules) == 8

    def test_load_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")
        settings = load_settings(config_file)
        assert settings.health.default_timeout_secs == 5.0

    def test_partial_yaml_merges_with_defaults(self, tmp_path: Path) -> None:
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(yaml.dump({"health": {"disk_path": "/tmp"}}))

        settings = load_settings(config_file)
        assert settings.health.disk_path == "/tmp"
        # Other defaults still intact
        assert settings.health.default_interval_secs == 30.0
        assert settings.metrics.capacity == 1000

    def test_get_settings_caches_loaded(self, tmp_path: Path) -> None:
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(yaml.dump({"metrics": {"capacity": 7}}))
        loaded = load_settings(config_file)
        assert get_settings() is loaded

    def test_repo_settings_file_parses(self) -> None:
        path = Path(__file__).resolve().parents[2] / "config" / "settings.yaml"
        settings = load_settings(path)
        assert settings.alerts.severity_cooldowns_secs[Severity.MEDIUM] == 300
        assert len(settings.alerts.rules) == 8
