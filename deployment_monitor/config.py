"""
Deployment Monitor - Configuration.

============================================================
PURPOSE
============================================================
All configuration for the deployment monitor.

- Provider list (type + enabled flag + options)
- Custom metric names to track
- Alert definitions (immutable after registration)
- Dashboards (opaque, passed through untouched)
- Global enabled flag and poll interval

Configuration may be built in code, loaded from a JSON
file, or read from environment variables (.env supported).

============================================================
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from dotenv import load_dotenv

from .errors import ConfigurationError
from .models import AlertSeverity


logger = logging.getLogger(__name__)


# ============================================================
# PROVIDERS
# ============================================================

@dataclass
class ProviderConfig:
    """A metrics provider entry."""

    name: str
    type: str
    """prometheus | datadog | new_relic | grafana | http | custom | replay"""

    enabled: bool = True
    options: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProviderConfig":
        return cls(
            name=data.get("name", data.get("type", "unnamed")),
            type=data["type"],
            enabled=data.get("enabled", True),
            options=dict(data.get("config", data.get("options", {})) or {}),
        )


# ============================================================
# NOTIFICATION CHANNELS
# ============================================================

@dataclass(frozen=True)
class ChannelConfig:
    """A notification channel attached to an alert definition."""

    type: str
    """webhook | slack | pagerduty | telegram | email | log"""

    enabled: bool = True
    options: Dict[str, Any] = field(default_factory=dict, hash=False)

    @property
    def key(self) -> str:
        """Stable identifier used in logs and dispatch results."""
        target = self.options.get("url") or self.options.get("chat_id") or ""
        return f"{self.type}:{target}" if target else self.type

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChannelConfig":
        options = data.get("config", data.get("options", {})) or {}
        return cls(
            type=data["type"],
            enabled=data.get("enabled", True),
            options=dict(options),
        )


# ============================================================
# ALERT DEFINITIONS
# ============================================================

@dataclass(frozen=True)
class AlertDefinition:
    """
    A named alert condition.

    Immutable after registration.
    """

    name: str
    condition: str
    severity: AlertSeverity = AlertSeverity.MEDIUM
    channels: Tuple[ChannelConfig, ...] = ()
    description: str = ""

    suppression_minutes: Optional[float] = None
    """Cooldown after each trigger. None falls back to the monitor default."""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AlertDefinition":
        if "name" not in data or "condition" not in data:
            raise ConfigurationError(
                "Alert definition requires 'name' and 'condition'",
                {"alert": data},
            )

        try:
            severity = AlertSeverity(data.get("severity", "medium"))
        except ValueError:
            raise ConfigurationError(
                f"Unknown severity for alert {data['name']}: {data.get('severity')}"
            )

        suppression = data.get("suppression_minutes", data.get("suppressionMinutes"))
        if suppression is None and data.get("suppressionRules"):
            # Original-format suppression rules: use the longest duration.
            suppression = max(float(r.get("duration", 0)) for r in data["suppressionRules"])

        return cls(
            name=data["name"],
            condition=data["condition"],
            severity=severity,
            channels=tuple(ChannelConfig.from_dict(c) for c in data.get("channels", [])),
            description=data.get("description", ""),
            suppression_minutes=float(suppression) if suppression is not None else None,
        )


# ============================================================
# MONITORING CONFIGURATION
# ============================================================

@dataclass
class MonitoringConfig:
    """
    Complete monitor configuration.
    """

    enabled: bool = True
    """Global enabled flag. A disabled monitor never starts its poll loop."""

    poll_interval_seconds: float = 30.0
    """Scheduler tick interval."""

    providers: List[ProviderConfig] = field(default_factory=list)
    metrics: List[str] = field(default_factory=list)
    """Custom metric names to track."""

    alerts: List[AlertDefinition] = field(default_factory=list)
    dashboards: List[Dict[str, Any]] = field(default_factory=list)
    """Opaque dashboard definitions, passed through untouched."""

    history_capacity: int = 1000
    """Ring buffer capacity per deployment."""

    baseline_tolerance: float = 0.2
    """Fractional tolerance for baseline validation."""

    notify_on_resolve: bool = False
    """Send a notification when a triggered alert resolves."""

    default_suppression_minutes: Optional[float] = None
    """Cooldown applied after a trigger when a definition sets none."""

    max_health_checks: int = 100
    """Health-check results kept per deployment."""

    def validate(self) -> None:
        """Raise ConfigurationError on invalid values."""
        if self.poll_interval_seconds <= 0:
            raise ConfigurationError("poll_interval_seconds must be positive")
        if self.history_capacity <= 0:
            raise ConfigurationError("history_capacity must be positive")
        if not 0 <= self.baseline_tolerance < 1:
            raise ConfigurationError("baseline_tolerance must be in [0, 1)")
        if self.max_health_checks <= 0:
            raise ConfigurationError("max_health_checks must be positive")

        names = [a.name for a in self.alerts]
        duplicates = {n for n in names if names.count(n) > 1}
        if duplicates:
            raise ConfigurationError(
                f"Duplicate alert names: {', '.join(sorted(duplicates))}"
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MonitoringConfig":
        metrics = [
            m["name"] if isinstance(m, dict) else str(m)
            for m in data.get("metrics", [])
        ]

        config = cls(
            enabled=data.get("enabled", True),
            poll_interval_seconds=float(
                data.get("poll_interval_seconds", data.get("pollIntervalSeconds", 30.0))
            ),
            providers=[ProviderConfig.from_dict(p) for p in data.get("providers", [])],
            metrics=metrics,
            alerts=[AlertDefinition.from_dict(a) for a in data.get("alerts", [])],
            dashboards=list(data.get("dashboards", [])),
            history_capacity=int(data.get("history_capacity", 1000)),
            baseline_tolerance=float(data.get("baseline_tolerance", 0.2)),
            notify_on_resolve=bool(data.get("notify_on_resolve", False)),
            default_suppression_minutes=data.get("default_suppression_minutes"),
            max_health_checks=int(data.get("max_health_checks", 100)),
        )
        config.validate()
        return config

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "MonitoringConfig":
        """Load configuration from a JSON file."""
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise ConfigurationError(f"Config file not found: {path}")
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {path}: {e}")

        logger.info(f"Loaded monitoring config from {path}")
        return cls.from_dict(data)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "MonitoringConfig":
        """
        Build configuration from environment variables.

        DEPLOYMENT_MONITOR_CONFIG points at a JSON file; individual
        DEPLOYMENT_MONITOR_* variables override its scalar values.
        """
        load_dotenv(env_file)

        path = os.getenv("DEPLOYMENT_MONITOR_CONFIG")
        config = cls.from_file(path) if path else cls()

        enabled = os.getenv("DEPLOYMENT_MONITOR_ENABLED")
        if enabled is not None:
            config.enabled = enabled.strip().lower() in ("1", "true", "yes", "on")

        interval = os.getenv("DEPLOYMENT_MONITOR_POLL_INTERVAL")
        if interval:
            config.poll_interval_seconds = float(interval)

        tolerance = os.getenv("DEPLOYMENT_MONITOR_BASELINE_TOLERANCE")
        if tolerance:
            config.baseline_tolerance = float(tolerance)

        metrics_url = os.getenv("DEPLOYMENT_MONITOR_METRICS_URL")
        if metrics_url and not any(p.type == "http" for p in config.providers):
            config.providers.append(ProviderConfig(
                name="env",
                type="http",
                options={"url": metrics_url},
            ))

        config.validate()
        return config

    @classmethod
    def for_testing(cls) -> "MonitoringConfig":
        """Configuration with a short interval and no providers."""
        return cls(
            enabled=True,
            poll_interval_seconds=0.01,
            history_capacity=10,
        )
