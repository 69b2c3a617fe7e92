"""
Tests for monitor configuration.
"""

import json

import pytest

from deployment_monitor.config import (
    AlertDefinition,
    ChannelConfig,
    MonitoringConfig,
    ProviderConfig,
)
from deployment_monitor.errors import ConfigurationError, DuplicateAlertError
from deployment_monitor.models import AlertSeverity


ENV_KEYS = (
    "DEPLOYMENT_MONITOR_CONFIG",
    "DEPLOYMENT_MONITOR_ENABLED",
    "DEPLOYMENT_MONITOR_POLL_INTERVAL",
    "DEPLOYMENT_MONITOR_BASELINE_TOLERANCE",
    "DEPLOYMENT_MONITOR_METRICS_URL",
)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove monitor variables and anything .env loading adds."""
    for key in ENV_KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    return monkeypatch


@pytest.fixture
def raw_config():
    """Configuration in the JSON layout used by existing deployments."""
    return {
        "enabled": True,
        "providers": [
            {"name": "prom", "type": "prometheus", "enabled": True,
             "config": {"url": "http://prometheus.local/snapshot"}},
        ],
        "metrics": [{"name": "queue_depth", "type": "gauge"}],
        "alerts": [
            {
                "name": "High Error Rate",
                "condition": "error_rate > 5",
                "severity": "critical",
                "channels": [
                    {"type": "slack", "config": {"url": "http://hooks.local/slack"}},
                ],
                "suppressionRules": [
                    {"condition": "maintenance", "duration": 15},
                    {"condition": "deploy", "duration": 5},
                ],
            },
        ],
        "dashboards": [{"name": "Release health", "widgets": []}],
    }


class TestAlertDefinition:
    """Tests for AlertDefinition.from_dict."""

    def test_defaults(self):
        definition = AlertDefinition.from_dict({"name": "x", "condition": "errorRate > 1"})

        assert definition.severity == AlertSeverity.MEDIUM
        assert definition.channels == ()
        assert definition.suppression_minutes is None

    def test_missing_condition(self):
        with pytest.raises(ConfigurationError):
            AlertDefinition.from_dict({"name": "x"})

    def test_unknown_severity(self):
        with pytest.raises(ConfigurationError):
            AlertDefinition.from_dict({"name": "x", "condition": "a > 1", "severity": "urgent"})

    def test_explicit_suppression(self):
        definition = AlertDefinition.from_dict({
            "name": "x", "condition": "a > 1", "suppressionMinutes": 3,
        })

        assert definition.suppression_minutes == 3.0

    def test_is_immutable(self):
        definition = AlertDefinition(name="x", condition="a > 1")

        with pytest.raises(AttributeError):
            definition.condition = "a > 2"


class TestChannelConfig:
    """Tests for ChannelConfig."""

    def test_key(self):
        assert ChannelConfig("log").key == "log"
        assert ChannelConfig("slack", options={"url": "http://h"}).key == "slack:http://h"
        assert ChannelConfig("telegram", options={"chat_id": "-100"}).key == "telegram:-100"

    def test_from_dict_accepts_options(self):
        config = ChannelConfig.from_dict({"type": "webhook", "options": {"url": "http://h"}})

        assert config.options == {"url": "http://h"}
        assert config.enabled


class TestMonitoringConfig:
    """Tests for MonitoringConfig."""

    def test_defaults(self):
        config = MonitoringConfig()

        assert config.enabled
        assert config.poll_interval_seconds == 30.0
        assert config.history_capacity == 1000
        assert config.baseline_tolerance == 0.2
        assert config.notify_on_resolve is False
        assert config.default_suppression_minutes is None
        config.validate()

    def test_for_testing(self):
        config = MonitoringConfig.for_testing()

        assert config.poll_interval_seconds < 1
        assert config.history_capacity == 10

    def test_from_dict(self, raw_config):
        config = MonitoringConfig.from_dict(raw_config)

        assert config.providers == [ProviderConfig(
            name="prom",
            type="prometheus",
            enabled=True,
            options={"url": "http://prometheus.local/snapshot"},
        )]
        assert config.metrics == ["queue_depth"]
        alert = config.alerts[0]
        assert alert.severity == AlertSeverity.CRITICAL
        assert alert.suppression_minutes == 15.0
        assert alert.channels[0].key == "slack:http://hooks.local/slack"
        assert config.dashboards == [{"name": "Release health", "widgets": []}]

    @pytest.mark.parametrize("field,value", [
        ("poll_interval_seconds", 0),
        ("history_capacity", 0),
        ("baseline_tolerance", 1.0),
        ("baseline_tolerance", -0.1),
        ("max_health_checks", 0),
    ])
    def test_validate_rejects(self, field, value):
        config = MonitoringConfig()
        setattr(config, field, value)

        with pytest.raises(ConfigurationError):
            config.validate()

    def test_duplicate_alert_names(self):
        config = MonitoringConfig(alerts=[
            AlertDefinition(name="x", condition="a > 1"),
            AlertDefinition(name="x", condition="a > 2"),
        ])

        with pytest.raises(ConfigurationError) as exc_info:
            config.validate()

        assert not isinstance(exc_info.value, DuplicateAlertError)
        assert "x" in exc_info.value.message

    def test_from_file(self, tmp_path, raw_config):
        path = tmp_path / "monitor.json"
        path.write_text(json.dumps(raw_config), encoding="utf-8")

        config = MonitoringConfig.from_file(path)

        assert config.alerts[0].name == "High Error Rate"

    def test_from_file_missing(self, tmp_path):
        with pytest.raises(ConfigurationError):
            MonitoringConfig.from_file(tmp_path / "absent.json")

    def test_from_file_invalid_json(self, tmp_path):
        path = tmp_path / "monitor.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            MonitoringConfig.from_file(path)

    def test_from_env(self, clean_env, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text(
            "DEPLOYMENT_MONITOR_POLL_INTERVAL=5\n"
            "DEPLOYMENT_MONITOR_ENABLED=false\n"
            "DEPLOYMENT_MONITOR_METRICS_URL=http://metrics.local/snapshot\n",
            encoding="utf-8",
        )

        config = MonitoringConfig.from_env(str(env_file))

        assert config.poll_interval_seconds == 5.0
        assert config.enabled is False
        assert config.providers[0].type == "http"
        assert config.providers[0].options["url"] == "http://metrics.local/snapshot"

    def test_from_env_with_config_file(self, clean_env, tmp_path, raw_config):
        path = tmp_path / "monitor.json"
        path.write_text(json.dumps(raw_config), encoding="utf-8")
        clean_env.setenv("DEPLOYMENT_MONITOR_CONFIG", str(path))
        clean_env.setenv("DEPLOYMENT_MONITOR_BASELINE_TOLERANCE", "0.1")

        config = MonitoringConfig.from_env(str(tmp_path / "missing.env"))

        assert config.baseline_tolerance == 0.1
        assert [p.name for p in config.providers] == ["prom"]
